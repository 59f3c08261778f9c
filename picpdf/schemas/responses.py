"""Schemas for JSON responses of the HTTP surface."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response returned by the health endpoint."""
    ok: bool = Field(True, description="Always true while the process is serving")


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response."""
    error: str = Field(..., description="Stable, human-readable error message")
