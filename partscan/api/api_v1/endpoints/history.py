"""
Recognition history API endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends

from partscan.api.deps import get_history_store
from partscan.models.schemas import HistoryItem
from partscan.services.orchestrator import HistoryStore


router = APIRouter()


@router.get(
    "",
    response_model=List[HistoryItem],
    summary="Recent Sessions",
    description="The most recent recognition sessions, newest first."
)
async def list_history(store: HistoryStore = Depends(get_history_store)):
    return list(store.refresh())
