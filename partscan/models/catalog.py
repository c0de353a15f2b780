"""
Reference parts catalog keyed by part number.
"""
from sqlalchemy import Column, String

from partscan.db.database import Base
from partscan.models.base import TimestampMixin


class CatalogPart(Base, TimestampMixin):
    """
    One canonical reference part. Rows are only ever upserted on part_number.
    """
    __tablename__ = "parts_catalog"

    part_number = Column(String(255), primary_key=True)
    part_name = Column(String(255), nullable=False, default="")
    station = Column(String(255), nullable=False, default="")

    def __repr__(self):
        return f"<CatalogPart(part_number={self.part_number}, station={self.station})>"
