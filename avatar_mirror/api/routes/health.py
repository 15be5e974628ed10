"""
Health check endpoints.

Used by process supervisors and monitoring systems
to verify the camera, render loop and avatar are up.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from avatar_mirror.api.deps import get_pipeline
from avatar_mirror.config import get_settings
from avatar_mirror.pipeline import RetargetPipeline

router = APIRouter()


class HealthStatus(BaseModel):
    """Health check response model."""

    status: str
    timestamp: datetime
    version: str
    checks: dict[str, str]


@router.get("/health", response_model=HealthStatus)
async def health_check(pipeline: RetargetPipeline = Depends(get_pipeline)) -> HealthStatus:
    """
    Comprehensive health check.

    Verifies:
    - Camera capture is running
    - Render loop is ticking
    - An avatar is bound

    Returns 200 in all cases, includes status of each component.
    """
    settings = get_settings()
    checks = pipeline.health()

    # Determine overall status
    all_healthy = all(v == "healthy" for v in checks.values())
    status_text = "healthy" if all_healthy else "degraded"

    return HealthStatus(
        status=status_text,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        checks=checks,
    )


@router.get("/health/live")
async def liveness():
    """
    Liveness probe.

    Simple check that the service is running.
    Does not check the pipeline.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(pipeline: RetargetPipeline = Depends(get_pipeline)):
    """
    Readiness probe.

    Ready once the render loop is running.
    """
    if pipeline.running:
        return {"status": "ready"}
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": "not ready"})
