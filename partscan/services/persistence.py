"""
Persistence adapter: sessions, captured images, matches and the parts
catalog in the relational database, image payloads in object storage.
"""
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from loguru import logger
from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from partscan.core.config import settings
from partscan.core.exceptions import ImagePersistenceError, PersistenceError
from partscan.db.database import SessionLocal
from partscan.models.base import utcnow
from partscan.models.catalog import CatalogPart
from partscan.models.schemas import AutoPart, CapturedImageOut, CatalogItem, HistoryItem
from partscan.models.session import CapturedImage, RecognitionMatch, RecognitionSession


class PersistenceService:
    """
    Durable storage for the scan workflow.

    Every public call runs in its own transaction. Database failures
    surface as ``PersistenceError``; per-image failures as
    ``ImagePersistenceError`` so callers can treat them as best-effort.
    """

    def __init__(self, session_factory=None, object_store=None, history_limit: int = None):
        self.session_factory = session_factory or SessionLocal
        self._object_store = object_store
        self._object_store_lock = threading.Lock()
        self.history_limit = history_limit or settings.HISTORY_LIMIT

    @property
    def object_store(self):
        if self._object_store is None:
            # Uploads run in worker threads; the boto3 default session is not thread-safe
            with self._object_store_lock:
                if self._object_store is None:
                    from partscan.services.storage import S3Service
                    self._object_store = S3Service()
        return self._object_store

    @contextmanager
    def _transaction(self, error_cls=PersistenceError, action: str = "database operation") -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed {action}: {e}")
            raise error_cls(f"Failed {action}") from e
        finally:
            db.close()

    # Sessions

    def create_session(self, summary: str, total_matches: int) -> str:
        """Insert a recognition session and return its id."""
        with self._transaction(action="to create recognition session") as db:
            session = RecognitionSession(summary=summary, total_matches=total_matches)
            db.add(session)
            db.flush()
            session_id = session.id
        logger.info(f"Created recognition session {session_id} with {total_matches} matches")
        return session_id

    def upload_image(self, payload: bytes, naming_hint: str) -> str:
        """Store an image payload and return its public URL."""
        try:
            return self.object_store.upload_image(payload, naming_hint)
        except ImagePersistenceError:
            raise
        except Exception as e:
            raise ImagePersistenceError(f"Storage upload error: {e}") from e

    def record_image(self, session_id: str, url: str, angle_label: str) -> None:
        """Tie an uploaded image to its session."""
        with self._transaction(ImagePersistenceError, action=f"to record image for session {session_id}") as db:
            db.add(CapturedImage(session_id=session_id, image_url=url, angle_label=angle_label))

    def record_matches(self, session_id: str, matches: Sequence[AutoPart]) -> None:
        """Insert all match rows of a session in one batch."""
        if not matches:
            return
        with self._transaction(action=f"to record matches for session {session_id}") as db:
            db.add_all([
                RecognitionMatch(
                    session_id=session_id,
                    part_number=match.part_number,
                    part_name=match.part_name,
                    station=match.station,
                    model=match.model,
                    color=match.color,
                    match_percentage=match.match_percentage,
                    description=match.description,
                    category=match.category,
                )
                for match in matches
            ])
        logger.debug(f"Recorded {len(matches)} matches for session {session_id}")

    def list_recent_sessions(self, limit: Optional[int] = None) -> List[HistoryItem]:
        """Most recent sessions first, never more than the history limit."""
        limit = self.history_limit if limit is None else max(0, min(limit, self.history_limit))
        with self._transaction(action="to load session history") as db:
            sessions = (
                db.query(RecognitionSession)
                .options(selectinload(RecognitionSession.images), selectinload(RecognitionSession.matches))
                .order_by(desc(RecognitionSession.created_at), desc(RecognitionSession.id))
                .limit(limit)
                .all()
            )
            return [self._to_history_item(s) for s in sessions]

    @staticmethod
    def _to_history_item(session: RecognitionSession) -> HistoryItem:
        return HistoryItem(
            id=session.id,
            created_at=session.created_at,
            summary=session.summary,
            total_matches=session.total_matches,
            images=[
                CapturedImageOut(image_url=image.image_url, angle_label=image.angle_label)
                for image in session.images
            ],
            matches=[
                AutoPart(
                    part_number=m.part_number,
                    part_name=m.part_name,
                    station=m.station,
                    model=m.model,
                    color=m.color,
                    match_percentage=m.match_percentage,
                    description=m.description,
                    category=m.category,
                )
                for m in session.matches
            ],
        )

    # Catalog

    def upsert_catalog_rows(self, rows: Sequence[CatalogItem]) -> int:
        """
        Insert or overwrite catalog rows keyed on part number.

        Args:
            rows: Canonical catalog rows, unique by part number

        Returns:
            int: Number of rows written
        """
        if not rows:
            return 0
        now = utcnow()
        values = [
            {
                "part_number": row.part_number,
                "part_name": row.part_name,
                "station": row.station,
                "created_at": now,
                "updated_at": now,
            }
            for row in rows
        ]
        with self._transaction(action="to sync inventory") as db:
            dialect = db.get_bind().dialect.name
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            elif dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert
            else:
                insert = None

            if insert is None:
                for value in values:
                    db.merge(CatalogPart(**value))
            else:
                stmt = insert(CatalogPart).values(values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[CatalogPart.part_number],
                    set_={
                        "part_name": stmt.excluded.part_name,
                        "station": stmt.excluded.station,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                db.execute(stmt)
        logger.info(f"Upserted {len(values)} catalog rows")
        return len(values)

    def list_catalog(self) -> List[CatalogItem]:
        """All catalog rows ordered by part number."""
        with self._transaction(action="to load parts catalog") as db:
            parts = db.query(CatalogPart).order_by(CatalogPart.part_number).all()
            return [
                CatalogItem(part_number=p.part_number, part_name=p.part_name, station=p.station)
                for p in parts
            ]
