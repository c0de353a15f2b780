"""
Capture buffer: the ordered set of photos collected for one scan.
"""
import asyncio
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple, Union

import cv2
import numpy as np
from loguru import logger

from partscan.core.exceptions import DecodeError

# Raw image input: encoded bytes or a path to an image file
RawImage = Union[bytes, bytearray, str, Path]

JPEG_QUALITY = 90


@dataclass(frozen=True)
class PhotoCapture:
    """One captured frame, JPEG encoded."""
    id: str
    payload: bytes
    angle: str


def decode_image(raw: RawImage) -> bytes:
    """
    Decode an arbitrary image file and re-encode it as JPEG.

    Args:
        raw: Encoded image bytes or a path to an image file

    Returns:
        bytes: JPEG payload

    Raises:
        DecodeError: If the input is unreadable or not an image
    """
    try:
        data = Path(raw).read_bytes() if isinstance(raw, (str, Path)) else bytes(raw)
    except OSError as e:
        raise DecodeError(f"Could not read image file: {e}") from e

    array = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(array, cv2.IMREAD_COLOR) if array.size else None
    if image is None:
        raise DecodeError("Could not decode image data")

    ok, encoded = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
    if not ok:
        raise DecodeError("Could not encode image as JPEG")
    return encoded.tobytes()


def _new_id() -> str:
    return uuid.uuid4().hex


class CaptureBuffer:
    """
    Ordered, mutable collection of photos for the in-progress scan.

    Ids are generated here, never taken from callers, so they are unique
    for the lifetime of the buffer.
    """

    def __init__(self):
        self._photos: List[PhotoCapture] = []

    def __len__(self) -> int:
        return len(self._photos)

    def __iter__(self) -> Iterator[PhotoCapture]:
        return iter(list(self._photos))

    @property
    def photos(self) -> Tuple[PhotoCapture, ...]:
        return tuple(self._photos)

    @property
    def payloads(self) -> List[bytes]:
        """Image payloads in capture order."""
        return [photo.payload for photo in self._photos]

    def add(self, payload: bytes) -> PhotoCapture:
        """Append a single capture labelled ``Angle N``."""
        photo = PhotoCapture(id=_new_id(), payload=payload, angle=f"Angle {len(self._photos) + 1}")
        self._photos.append(photo)
        logger.debug(f"Captured {photo.angle} ({len(payload)} bytes)")
        return photo

    async def add_batch(self, raw_files: Iterable[RawImage]) -> List[PhotoCapture]:
        """
        Decode several files concurrently and append them as ``Batch N``.

        Labels are assigned only once every decode has finished, so
        numbering is contiguous whatever order the decodes complete in.
        A single failure discards the whole batch.

        Raises:
            DecodeError: If any file could not be decoded
        """
        raw_files = list(raw_files)
        if not raw_files:
            return []

        results = await asyncio.gather(
            *(asyncio.to_thread(decode_image, raw) for raw in raw_files),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            for failure in failures:
                if not isinstance(failure, Exception):
                    raise failure
            logger.error(f"Batch import failed: {len(failures)} of {len(raw_files)} files could not be decoded")
            raise DecodeError(
                f"Error processing images from gallery: {len(failures)} of {len(raw_files)} files could not be decoded"
            ) from failures[0]

        start = len(self._photos)
        added = [
            PhotoCapture(id=_new_id(), payload=payload, angle=f"Batch {start + idx + 1}")
            for idx, payload in enumerate(results)
        ]
        self._photos.extend(added)
        logger.info(f"Imported {len(added)} photos, buffer now holds {len(self._photos)}")
        return added

    def remove(self, photo_id: str) -> bool:
        """Remove the photo with ``photo_id``. Returns False when absent."""
        for idx, photo in enumerate(self._photos):
            if photo.id == photo_id:
                del self._photos[idx]
                return True
        return False

    def clear(self) -> None:
        self._photos.clear()
