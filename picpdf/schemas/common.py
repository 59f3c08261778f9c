"""Shared schema types used across the conversion pipeline."""

from __future__ import annotations

import enum
from pathlib import Path

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class CleanupState(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    CLEANED = "CLEANED"


# ---------------------------------------------------------------------------
# Data Models
# ---------------------------------------------------------------------------

class UploadedImage(BaseModel):
    """An accepted upload that has been written into the transient store."""
    original_filename: str = Field(..., description="Filename as declared by the client (untrusted)")
    stored_filename: str = Field(..., description="Sanitised, unique on-disk filename")
    path: Path = Field(..., description="Absolute on-disk path")
    content_type: str = Field(..., description="Declared part content type")
    size_bytes: int = Field(..., ge=0, description="Bytes written to disk")


class ConversionRequest(BaseModel):
    """Ordered images for one request; list order is the final page order."""
    request_id: str = Field(..., description="Request-scoped identifier")
    images: list[UploadedImage] = Field(default_factory=list)


class PageGeometry(BaseModel):
    """Fixed page size in PDF points, zero margins on every side."""
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class Placement(BaseModel):
    """Where an image lands inside a page, in PDF points from the bottom-left corner."""
    x: float
    y: float
    width: float
    height: float


class GeneratedDocument(BaseModel):
    """A finalised PDF on disk, verified and ready for transfer."""
    path: Path
    page_count: int = Field(..., ge=1)
    geometry: PageGeometry
    size_bytes: int = Field(..., ge=0)
