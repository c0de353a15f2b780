"""
Logging configuration for the PartScan identification service.
"""
import os
import sys

from loguru import logger

from partscan.core.config import settings


def setup_logging():
    """Configure logging for the application."""
    # Remove default handler
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )

    # File handler outside of debug runs
    if settings.LOG_LEVEL.upper() != "DEBUG":
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        log_file = os.path.join(settings.LOG_DIR, "partscan.log")

        logger.add(
            log_file,
            rotation="10 MB",
            retention="7 days",
            level=settings.LOG_LEVEL,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
        )

    if settings.DEBUG_MODE:
        logger.debug(f"Debug mode enabled, database: {settings.DATABASE_URL}")

    return logger
