"""
Parts catalog API endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status

from partscan.api.deps import get_catalog_store, get_reconciler
from partscan.models.schemas import CatalogItem, ImportResponse
from partscan.services.catalog import CatalogImportReconciler, CatalogStore


router = APIRouter()


@router.get(
    "",
    response_model=List[CatalogItem],
    summary="List Catalog",
    description="Reference parts ordered by part number."
)
async def list_catalog(refresh: bool = False, store: CatalogStore = Depends(get_catalog_store)):
    if refresh or not len(store):
        store.refresh()
    return list(store.snapshot())


@router.post(
    "/import",
    response_model=ImportResponse,
    status_code=status.HTTP_200_OK,
    summary="Import Catalog",
    description="Merge the first sheet of a spreadsheet (or a CSV file) into the catalog, keyed by part number."
)
async def import_catalog(
    file: UploadFile = File(...),
    reconciler: CatalogImportReconciler = Depends(get_reconciler)
):
    report = reconciler.import_file(await file.read(), file.filename)
    return ImportResponse(accepted=report.accepted, rejected=report.rejected, message=report.message)
