"""Health check endpoints."""
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.config import get_config
from services.vehicle_service import VehicleService, get_vehicle_service

router = APIRouter()

# Version info - updated on build/deploy
APP_VERSION = "1.0.0"

START_TIME = time.monotonic()


class SyncStatus:
    """Outcome of the most recent scheduled sync, shared with the cron route."""

    last_sync: Optional[str] = None
    last_error: Optional[str] = None

    @classmethod
    def record(cls, success: bool, error: Optional[str] = None) -> None:
        if success:
            cls.last_sync = _utc_now()
            cls.last_error = None
        else:
            cls.last_error = error or "Unknown error"

    @classmethod
    def reset(cls) -> None:
        cls.last_sync = None
        cls.last_error = None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CacheCheck(BaseModel):
    status: str
    vehicleCount: int
    lastUpdated: Optional[str] = None


class UpstreamCheck(BaseModel):
    status: str
    lastSync: Optional[str] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    timestamp: str
    status: str
    version: str
    environment: str
    cache: CacheCheck
    googleSheets: UpstreamCheck
    uptime: int


def overall_status(cache_status: str, upstream_status: str) -> str:
    """healthy, degraded (cache miss or upstream down) or unhealthy (both)."""
    if cache_status == "miss" and upstream_status == "disconnected":
        return "unhealthy"
    if cache_status == "miss" or upstream_status == "disconnected":
        return "degraded"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(service: VehicleService = Depends(get_vehicle_service)):
    """
    Health check endpoint.

    Returns system health status including:
    - Server cache state
    - Apps Script connectivity (5 second round trip)
    - Last scheduled sync
    """
    cache = service.cache_status()
    upstream_status, _ = await service.check_upstream()
    status = overall_status(cache["status"], upstream_status)

    response = HealthResponse(
        timestamp=_utc_now(),
        status=status,
        version=APP_VERSION,
        environment=get_config().environment,
        cache=CacheCheck(
            status=cache["status"],
            vehicleCount=cache["vehicleCount"],
            lastUpdated=SyncStatus.last_sync,
        ),
        googleSheets=UpstreamCheck(
            status=upstream_status,
            lastSync=SyncStatus.last_sync,
            error=SyncStatus.last_error,
        ),
        uptime=int(time.monotonic() - START_TIME),
    )

    return JSONResponse(
        status_code=503 if status == "unhealthy" else 200,
        content=response.model_dump(),
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, Any]:
    """Simple readiness check for k8s/docker."""
    return {"ready": True}


@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    """Simple liveness check for k8s/docker."""
    return {"alive": True}
