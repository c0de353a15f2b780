"""
Health check API endpoints.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from partscan.core.config import settings
from partscan.db.database import get_db
from partscan.models.schemas import HealthResponse


router = APIRouter()


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health Check",
    description="Check the health and status of the service."
)
async def health_check(db: Session = Depends(get_db)):
    """
    Check the health and status of the service.

    - **Checks database connectivity**
    - **Returns service version**
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError:
        db_status = "error"

    return {
        "status": "ok" if db_status == "ok" else "error",
        "version": settings.VERSION,
        "database": db_status,
        "timestamp": datetime.now()
    }
