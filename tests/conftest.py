"""
Shared fixtures: an in-memory database, a fake object store and a
scripted identification engine.
"""
import threading

import cv2
import numpy as np
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from partscan.core.exceptions import ImagePersistenceError
from partscan.db.database import Base
from partscan.models import catalog as catalog_tables, session as session_tables  # noqa: F401
from partscan.models.schemas import AutoPart, IdentificationResult
from partscan.services.catalog import CatalogStore
from partscan.services.engine import IdentificationEngine
from partscan.services.orchestrator import HistoryStore
from partscan.services.persistence import PersistenceService


def make_image_bytes(color=(0, 0, 255), size=(24, 32), ext=".png") -> bytes:
    """Encode a solid-colour test image."""
    image = np.zeros((size[0], size[1], 3), dtype=np.uint8)
    image[:] = color
    ok, encoded = cv2.imencode(ext, image)
    assert ok
    return encoded.tobytes()


class FakeObjectStore:
    """Records uploads; fails the calls whose index is in ``fail_on``."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self.payloads = []
        self._lock = threading.Lock()

    def upload_image(self, payload, naming_hint):
        with self._lock:
            index = len(self.calls)
            self.calls.append(naming_hint)
        if index in self.fail_on:
            raise ImagePersistenceError("bucket unavailable")
        self.payloads.append(payload)
        return f"https://storage.test/{naming_hint}_{index}.jpg"


class FakeEngine(IdentificationEngine):
    """Returns a fixed result (or raises) and records every call."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def identify(self, images, catalog=None):
        self.calls.append((list(images), tuple(catalog or ())))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def persistence(session_factory, object_store):
    return PersistenceService(session_factory=session_factory, object_store=object_store)


@pytest.fixture
def catalog_store(persistence):
    return CatalogStore(persistence)


@pytest.fixture
def history_store(persistence):
    return HistoryStore(persistence)


@pytest.fixture
def sample_result():
    return IdentificationResult(
        parts=[
            AutoPart(
                part_number="A1",
                part_name="Door hinge",
                station="S1",
                model="Hatch GT",
                color="Silver",
                match_percentage=85,
                description="Upper left hinge",
                category="Body",
            )
        ],
        summary="ok",
    )


@pytest.fixture
def images():
    return [make_image_bytes(color=(i * 40, 0, 255 - i * 40)) for i in range(3)]
