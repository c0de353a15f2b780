"""
Pydantic schemas shared by the engine adapter, the workflow and the API.

Field names are snake_case in Python and camelCase on the wire, matching
the structured output the identification engine is asked for.
"""
import math
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema accepting both snake_case and camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScanStage(str, Enum):
    """Stages of the capture/identify state machine."""
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    RESULT = "RESULT"


class CatalogItem(CamelModel):
    """One canonical reference part."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    part_number: str
    part_name: str = ""
    station: str = ""

    @field_validator("part_number", "part_name", "station", mode="before")
    def strip_text(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("part_number")
    def part_number_present(cls, v: str) -> str:
        if not v:
            raise ValueError("part number must not be empty")
        return v


class AutoPart(CamelModel):
    """One identification match returned by the engine."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "partNumber": "A1",
                "partName": "Front bumper bracket",
                "station": "S1",
                "model": "Sedan LX",
                "color": "Black",
                "matchPercentage": 85,
                "description": "Left-hand mounting bracket",
                "category": "Body"
            }
        },
    )

    part_number: str
    part_name: str
    station: str
    model: str
    color: str
    match_percentage: float
    description: str = ""
    category: str = ""

    @field_validator("match_percentage")
    def finite_percentage(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("matchPercentage must be a finite number")
        return v


class IdentificationResult(CamelModel):
    """Engine output for one analysis call. Immutable once built."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    parts: Tuple[AutoPart, ...]
    summary: str


class CapturedImageOut(CamelModel):
    image_url: str
    angle_label: str


class HistoryItem(CamelModel):
    """A persisted session with its joined images and matches."""
    id: str
    created_at: datetime
    summary: str
    total_matches: int
    images: List[CapturedImageOut] = Field(default_factory=list)
    matches: List[AutoPart] = Field(default_factory=list)


class PhotoOut(CamelModel):
    id: str
    angle: str


class ImageUploadOut(CamelModel):
    photo_id: str
    angle: str
    url: Optional[str] = None
    error: Optional[str] = None


class ScanStateResponse(CamelModel):
    """Snapshot of one scan's state machine."""
    scan_id: str
    stage: ScanStage
    photos: List[PhotoOut]
    result: Optional[IdentificationResult] = None
    error: Optional[str] = None
    warning: Optional[str] = None
    uploads: List[ImageUploadOut] = Field(default_factory=list)


class ImportResponse(CamelModel):
    """Outcome of a catalog import."""
    accepted: int
    rejected: int
    message: str


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str
    version: str
    database: str
    timestamp: datetime = Field(default_factory=datetime.now)
