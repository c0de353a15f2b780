"""
Main API router that includes all endpoint groups.
"""
from fastapi import APIRouter

from partscan.api.api_v1.endpoints import catalog, health, history, scans

# Create the main API router
api_router = APIRouter()

api_router.include_router(
    scans.router,
    prefix="/scans",
    tags=["Scans"]
)

api_router.include_router(
    catalog.router,
    prefix="/catalog",
    tags=["Catalog"]
)

api_router.include_router(
    history.router,
    prefix="/history",
    tags=["History"]
)

api_router.include_router(
    health.router,
    prefix="/health",
    tags=["Health"]
)
