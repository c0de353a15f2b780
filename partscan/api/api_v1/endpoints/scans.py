"""
Scan API endpoints: capture buffer management and identification.
"""
from typing import List

from fastapi import APIRouter, Depends, File, Response, UploadFile, status

from partscan.api.deps import get_registry
from partscan.models.schemas import ImageUploadOut, PhotoOut, ScanStateResponse
from partscan.services.orchestrator import ScanOrchestrator, ScanRegistry


router = APIRouter()


def _scan_state(scan_id: str, scan: ScanOrchestrator) -> ScanStateResponse:
    uploads = scan.last_upload_report.outcomes if scan.last_upload_report else []
    return ScanStateResponse(
        scan_id=scan_id,
        stage=scan.stage,
        photos=[PhotoOut(id=p.id, angle=p.angle) for p in scan.photos],
        result=scan.result,
        error=scan.error,
        warning=scan.warning,
        uploads=[
            ImageUploadOut(photo_id=o.photo_id, angle=o.angle, url=o.url, error=o.error)
            for o in uploads
        ],
    )


@router.post(
    "",
    response_model=ScanStateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open Scan",
    description="Start a new scan with an empty capture buffer."
)
async def create_scan(registry: ScanRegistry = Depends(get_registry)):
    scan_id, scan = registry.create()
    return _scan_state(scan_id, scan)


@router.get(
    "/{scan_id}",
    response_model=ScanStateResponse,
    summary="Scan State"
)
async def get_scan(scan_id: str, registry: ScanRegistry = Depends(get_registry)):
    return _scan_state(scan_id, registry.get(scan_id))


@router.delete(
    "/{scan_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close Scan"
)
async def close_scan(scan_id: str, registry: ScanRegistry = Depends(get_registry)):
    registry.discard(scan_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{scan_id}/photos",
    response_model=PhotoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Capture Photo",
    description="Append one captured frame, labelled by its position."
)
async def add_photo(
    scan_id: str,
    file: UploadFile = File(...),
    registry: ScanRegistry = Depends(get_registry)
):
    scan = registry.get(scan_id)
    photo = await scan.add_photo(await file.read())
    return PhotoOut(id=photo.id, angle=photo.angle)


@router.post(
    "/{scan_id}/photos/batch",
    response_model=List[PhotoOut],
    status_code=status.HTTP_201_CREATED,
    summary="Import Photos",
    description="Import several gallery images at once. One bad file rejects the whole batch."
)
async def import_photos(
    scan_id: str,
    files: List[UploadFile] = File(...),
    registry: ScanRegistry = Depends(get_registry)
):
    scan = registry.get(scan_id)
    raw_files = [await f.read() for f in files]
    photos = await scan.import_photos(raw_files)
    return [PhotoOut(id=p.id, angle=p.angle) for p in photos]


@router.delete(
    "/{scan_id}/photos/{photo_id}",
    response_model=ScanStateResponse,
    summary="Remove Photo"
)
async def remove_photo(scan_id: str, photo_id: str, registry: ScanRegistry = Depends(get_registry)):
    scan = registry.get(scan_id)
    scan.remove_photo(photo_id)
    return _scan_state(scan_id, scan)


@router.delete(
    "/{scan_id}/photos",
    response_model=ScanStateResponse,
    summary="Clear Photos"
)
async def clear_photos(scan_id: str, registry: ScanRegistry = Depends(get_registry)):
    scan = registry.get(scan_id)
    scan.clear_photos()
    return _scan_state(scan_id, scan)


@router.post(
    "/{scan_id}/identify",
    response_model=ScanStateResponse,
    summary="Identify Part",
    description="Send the buffered angles to the identification engine and persist the session."
)
async def identify(scan_id: str, registry: ScanRegistry = Depends(get_registry)):
    scan = registry.get(scan_id)
    await scan.start_identification()
    return _scan_state(scan_id, scan)


@router.post(
    "/{scan_id}/reset",
    response_model=ScanStateResponse,
    summary="Reset Scan"
)
async def reset_scan(scan_id: str, registry: ScanRegistry = Depends(get_registry)):
    scan = registry.get(scan_id)
    scan.reset()
    return _scan_state(scan_id, scan)


@router.post(
    "/{scan_id}/adjust",
    response_model=ScanStateResponse,
    summary="Adjust Perspective",
    description="Leave the result and keep capturing with the current photos."
)
async def adjust_perspective(scan_id: str, registry: ScanRegistry = Depends(get_registry)):
    scan = registry.get(scan_id)
    scan.adjust_perspective()
    return _scan_state(scan_id, scan)
