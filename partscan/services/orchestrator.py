"""
Scan orchestrator: drives one scan from capture through identification to
a persisted, displayable result.

    IDLE --start_identification--> ANALYZING --success--> RESULT
                                   ANALYZING --failure--> IDLE
    RESULT --reset / adjust_perspective--> IDLE
"""
import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from partscan.core.config import settings
from partscan.core.exceptions import (
    EngineError,
    ImagePersistenceError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ScanError,
    ValidationError,
)
from partscan.models.schemas import HistoryItem, IdentificationResult, ScanStage
from partscan.services.capture import CaptureBuffer, PhotoCapture, RawImage, decode_image
from partscan.services.catalog import CatalogStore
from partscan.services.engine import IdentificationEngine


@dataclass(frozen=True)
class ImageUploadOutcome:
    """Upload-then-record result for one photo."""
    photo_id: str
    angle: str
    url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BestEffortBatch:
    """Per-item outcomes of a batch where individual failures are tolerated."""
    outcomes: List[ImageUploadOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[ImageUploadOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[ImageUploadOutcome]:
        return [o for o in self.outcomes if not o.ok]


class HistoryStore:
    """Process-wide cache of the most recent sessions, refreshed wholesale."""

    def __init__(self, persistence, limit: int = None):
        self.persistence = persistence
        self.limit = limit or settings.HISTORY_LIMIT
        self._items: Tuple[HistoryItem, ...] = ()

    @property
    def items(self) -> Tuple[HistoryItem, ...]:
        return self._items

    def refresh(self) -> Tuple[HistoryItem, ...]:
        self._items = tuple(self.persistence.list_recent_sessions(self.limit))
        return self._items


class ScanOrchestrator:
    """
    State machine for one scan.

    Failures are raised to the caller and also kept in ``error`` as the
    user-visible banner text. A failed identification never touches the
    capture buffer, so the same photos can be retried.
    """

    def __init__(
        self,
        engine: IdentificationEngine,
        persistence,
        catalog_store: CatalogStore,
        history_store: HistoryStore = None,
        buffer: CaptureBuffer = None,
        min_angles: int = None,
    ):
        self.engine = engine
        self.persistence = persistence
        self.catalog_store = catalog_store
        self.history_store = history_store or HistoryStore(persistence)
        self.buffer = buffer or CaptureBuffer()
        self.min_angles = min_angles or settings.MIN_CAPTURE_ANGLES

        self.stage = ScanStage.IDLE
        self.result: Optional[IdentificationResult] = None
        self.error: Optional[str] = None
        self.warning: Optional[str] = None
        self.last_upload_report: Optional[BestEffortBatch] = None

    @property
    def photos(self) -> Tuple[PhotoCapture, ...]:
        return self.buffer.photos

    def _require_stage(self, *allowed: ScanStage, action: str) -> None:
        if self.stage not in allowed:
            raise InvalidTransitionError(f"Cannot {action} while scan is {self.stage.value}")

    # Capture

    async def add_photo(self, raw: RawImage) -> PhotoCapture:
        """Decode one frame from the image source and append it."""
        self._require_stage(ScanStage.IDLE, action="capture photos")
        try:
            payload = await asyncio.to_thread(decode_image, raw)
        except ScanError as e:
            self.error = e.message
            raise
        return self.buffer.add(payload)

    async def import_photos(self, raw_files: Iterable[RawImage]) -> List[PhotoCapture]:
        """Bulk import; all files decode or none are added."""
        self._require_stage(ScanStage.IDLE, action="import photos")
        try:
            return await self.buffer.add_batch(raw_files)
        except ScanError as e:
            self.error = e.message
            raise

    def remove_photo(self, photo_id: str) -> bool:
        self._require_stage(ScanStage.IDLE, ScanStage.RESULT, action="remove photos")
        return self.buffer.remove(photo_id)

    def clear_photos(self) -> None:
        self._require_stage(ScanStage.IDLE, ScanStage.RESULT, action="clear photos")
        self.buffer.clear()

    # Identification

    async def start_identification(self) -> IdentificationResult:
        """
        Run the engine over the buffer and persist the outcome.

        Raises:
            ValidationError: Fewer captures than ``min_angles``; nothing is called
            EngineError: The engine failed; state reverts to IDLE, buffer kept
            PersistenceError: The session row could not be created; the
                result is discarded and state reverts to IDLE
        """
        self._require_stage(ScanStage.IDLE, action="start identification")
        if len(self.buffer) < self.min_angles:
            self.error = f"Precision requires at least {self.min_angles} distinct angles."
            raise ValidationError(self.error)

        photos = self.buffer.photos
        payloads = self.buffer.payloads
        self.stage = ScanStage.ANALYZING
        self.error = None
        self.warning = None
        self.last_upload_report = None
        logger.info(f"Starting identification with {len(photos)} photos")

        try:
            result = await self.engine.identify(payloads, self.catalog_store.snapshot())
        except EngineError as e:
            self._abort(e)
            raise
        except Exception as e:
            error = EngineError(f"AI processing failed: {e}")
            self._abort(error)
            raise error from e

        try:
            session_id = self.persistence.create_session(result.summary, len(result.parts))
        except PersistenceError as e:
            self._abort(e)
            raise

        self.last_upload_report = await self._persist_images(session_id, photos)
        if self.last_upload_report.failed:
            self.warning = (f"{len(self.last_upload_report.failed)} of {len(photos)} images "
                            f"could not be saved to the cloud.")

        if result.parts:
            try:
                self.persistence.record_matches(session_id, result.parts)
            except PersistenceError as e:
                logger.error(f"Matches for session {session_id} were not saved: {e.message}")
                self.warning = "Matches could not be saved; history is incomplete for this scan."

        self.refresh_history()

        self.result = result
        self.stage = ScanStage.RESULT
        logger.info(f"Identification complete for session {session_id}: {len(result.parts)} matches")
        return result

    def _abort(self, error: ScanError) -> None:
        logger.error(f"Identification aborted: {error.message}")
        self.error = error.message
        self.result = None
        self.stage = ScanStage.IDLE

    async def _persist_photo(self, session_id: str, photo: PhotoCapture) -> ImageUploadOutcome:
        try:
            url = await asyncio.to_thread(self.persistence.upload_image, photo.payload, f"session_{session_id}")
            self.persistence.record_image(session_id, url, photo.angle)
        except ImagePersistenceError as e:
            logger.error(f"Image cloud sync error for {photo.angle}: {e.message}")
            return ImageUploadOutcome(photo_id=photo.id, angle=photo.angle, error=e.message)
        return ImageUploadOutcome(photo_id=photo.id, angle=photo.angle, url=url)

    async def _persist_images(self, session_id: str, photos: Iterable[PhotoCapture]) -> BestEffortBatch:
        outcomes = await asyncio.gather(*(self._persist_photo(session_id, photo) for photo in photos))
        return BestEffortBatch(outcomes=list(outcomes))

    def refresh_history(self) -> Tuple[HistoryItem, ...]:
        """Reload history; a failure only degrades the view."""
        try:
            return self.history_store.refresh()
        except PersistenceError as e:
            logger.warning(f"History refresh failed: {e.message}")
            self.warning = self.warning or "History could not be refreshed."
            return self.history_store.items

    # Leaving RESULT

    def reset(self) -> None:
        """Discard the whole scan: photos, result and error."""
        self._require_stage(ScanStage.IDLE, ScanStage.RESULT, action="reset")
        self.buffer.clear()
        self.result = None
        self.error = None
        self.warning = None
        self.last_upload_report = None
        self.stage = ScanStage.IDLE

    def adjust_perspective(self) -> None:
        """Return to capture keeping the photos already taken."""
        self._require_stage(ScanStage.IDLE, ScanStage.RESULT, action="adjust perspective")
        self.result = None
        self.error = None
        self.warning = None
        self.stage = ScanStage.IDLE


class ScanRegistry:
    """
    In-memory scans keyed by id, sharing the process-wide caches.

    The registry is bounded: scans idle for longer than ``ttl_seconds`` are
    dropped, and once ``max_scans`` are open the least recently used one is
    dropped to make room. A scan that is mid-identification is never dropped.
    """

    def __init__(
        self,
        engine_factory,
        persistence,
        catalog_store: CatalogStore,
        history_store: HistoryStore,
        max_scans: int = None,
        ttl_seconds: float = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine_factory = engine_factory
        self.persistence = persistence
        self.catalog_store = catalog_store
        self.history_store = history_store
        self.max_scans = max_scans or settings.MAX_OPEN_SCANS
        self.ttl_seconds = settings.SCAN_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._scans: Dict[str, ScanOrchestrator] = {}
        self._last_seen: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._scans)

    def _drop(self, scan_id: str) -> None:
        self._scans.pop(scan_id, None)
        self._last_seen.pop(scan_id, None)

    def _evictable(self) -> List[str]:
        return [sid for sid, scan in self._scans.items() if scan.stage is not ScanStage.ANALYZING]

    def evict_expired(self) -> List[str]:
        """Drop scans idle for longer than the TTL and return their ids."""
        cutoff = self.clock() - self.ttl_seconds
        expired = [sid for sid in self._evictable() if self._last_seen[sid] < cutoff]
        for scan_id in expired:
            self._drop(scan_id)
        if expired:
            logger.info(f"Dropped {len(expired)} idle scans")
        return expired

    def _make_room(self) -> None:
        while len(self._scans) >= self.max_scans:
            candidates = self._evictable()
            if not candidates:
                logger.warning(f"{len(self._scans)} scans are analyzing; opening one past the limit")
                return
            oldest = min(candidates, key=self._last_seen.__getitem__)
            self._drop(oldest)
            logger.info(f"Dropped least recently used scan {oldest}")

    def create(self) -> Tuple[str, ScanOrchestrator]:
        self.evict_expired()
        self._make_room()
        scan_id = uuid.uuid4().hex
        self._scans[scan_id] = ScanOrchestrator(
            engine=self.engine_factory(),
            persistence=self.persistence,
            catalog_store=self.catalog_store,
            history_store=self.history_store,
        )
        self._last_seen[scan_id] = self.clock()
        logger.debug(f"Opened scan {scan_id}")
        return scan_id, self._scans[scan_id]

    def get(self, scan_id: str) -> ScanOrchestrator:
        self.evict_expired()
        try:
            scan = self._scans[scan_id]
        except KeyError:
            raise NotFoundError(f"Scan {scan_id} not found") from None
        self._last_seen[scan_id] = self.clock()
        return scan

    def discard(self, scan_id: str) -> None:
        if scan_id not in self._scans:
            raise NotFoundError(f"Scan {scan_id} not found")
        self._drop(scan_id)
