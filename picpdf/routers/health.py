"""Router: GET /api/health — liveness probe."""

from __future__ import annotations

from fastapi import APIRouter

from picpdf.schemas.responses import HealthResponse

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(ok=True)
