"""
Persisted recognition sessions with their captured images and matches.
"""
import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from partscan.db.database import Base
from partscan.models.base import utcnow


class RecognitionSession(Base):
    """
    One completed analysis run. Written once, never updated.
    """
    __tablename__ = "recognition_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    summary = Column(Text, nullable=False, default="")
    total_matches = Column(Integer, nullable=False, default=0)

    # Relationships
    images = relationship(
        "CapturedImage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="CapturedImage.id",
    )
    matches = relationship(
        "RecognitionMatch",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="RecognitionMatch.id",
    )

    def __repr__(self):
        return f"<RecognitionSession(id={self.id}, total_matches={self.total_matches})>"


class CapturedImage(Base):
    """
    Public URL of one uploaded capture, tied to its session.
    """
    __tablename__ = "captured_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, ForeignKey("recognition_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(String, nullable=False)
    angle_label = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    session = relationship("RecognitionSession", back_populates="images")


class RecognitionMatch(Base):
    """
    Point-in-time snapshot of one engine match. Not linked to parts_catalog.
    """
    __tablename__ = "recognition_matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, ForeignKey("recognition_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    part_number = Column(String(255), nullable=False)
    part_name = Column(String(255), nullable=False, default="")
    station = Column(String(255), nullable=False, default="")
    model = Column(String(255), nullable=False, default="")
    color = Column(String(255), nullable=False, default="")
    match_percentage = Column(Float, nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(255), nullable=False, default="")

    session = relationship("RecognitionSession", back_populates="matches")

    def __repr__(self):
        return f"<RecognitionMatch(part_number={self.part_number}, match_percentage={self.match_percentage})>"
