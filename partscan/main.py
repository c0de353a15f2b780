"""
FastAPI application for the PartScan identification service.
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from partscan.api.api_v1.api import api_router
from partscan.api.deps import get_catalog_store, get_history_store
from partscan.core.config import settings
from partscan.core.exceptions import (
    PersistenceError,
    ScanError,
    generic_error_handler,
    scan_error_handler,
    validation_error_handler,
)
from partscan.core.logging import setup_logging
from partscan.db.database import Base, engine

# Register tables on the metadata
from partscan.models import catalog, session  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle startup and shutdown events for the application.
    """
    setup_logging()
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    # Warm the process-wide caches
    try:
        get_catalog_store().refresh()
        get_history_store().refresh()
    except PersistenceError as e:
        logger.warning(f"Could not load catalog/history at startup: {e.message}")

    logger.info(f"{settings.PROJECT_NAME} started")
    yield
    logger.info(f"{settings.PROJECT_NAME} shutting down...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.PROJECT_DESCRIPTION,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom exception handlers
app.add_exception_handler(ScanError, scan_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(Exception, generic_error_handler)


@app.middleware("http")
async def log_request_time(request: Request, call_next):
    """
    Middleware to log request processing time.
    """
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    logger.debug(f"Request {request.method} {request.url.path} processed in {process_time:.4f}s")
    response.headers["X-Process-Time"] = str(process_time)

    return response


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/", status_code=status.HTTP_200_OK)
async def root():
    """
    Root endpoint for the service.
    """
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs_url": "/docs",
        "api_prefix": settings.API_V1_STR
    }
