"""
Shared service instances for the API routers.
"""
from functools import lru_cache

from partscan.services.catalog import CatalogImportReconciler, CatalogStore
from partscan.services.engine import GeminiIdentificationEngine
from partscan.services.orchestrator import HistoryStore, ScanRegistry
from partscan.services.persistence import PersistenceService
from partscan.services.storage import S3Service


@lru_cache()
def get_object_store() -> S3Service:
    return S3Service()


@lru_cache()
def get_persistence() -> PersistenceService:
    return PersistenceService(object_store=get_object_store())


@lru_cache()
def get_catalog_store() -> CatalogStore:
    return CatalogStore(get_persistence())


@lru_cache()
def get_history_store() -> HistoryStore:
    return HistoryStore(get_persistence())


@lru_cache()
def get_registry() -> ScanRegistry:
    return ScanRegistry(
        engine_factory=GeminiIdentificationEngine,
        persistence=get_persistence(),
        catalog_store=get_catalog_store(),
        history_store=get_history_store(),
    )


def get_reconciler() -> CatalogImportReconciler:
    return CatalogImportReconciler(get_persistence(), get_catalog_store())
