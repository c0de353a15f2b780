"""
PartScan Identification Service
Main application entry point
"""
import uvicorn

from partscan.core.config import settings
from partscan.core.logging import setup_logging

if __name__ == "__main__":
    # Setup logging
    setup_logging()

    # Run the application
    uvicorn.run(
        "partscan.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG_MODE
    )
