"""Scheduled vehicle sync.

Invoked by the platform scheduler. When CRON_SECRET is configured the caller
must send ``Authorization: Bearer <CRON_SECRET>``.
"""

import hmac
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.routes.health import SyncStatus
from core.config import get_config
from core.errors import AuthError, VehicleServiceError
from services.vehicle_service import VehicleService, get_vehicle_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["Cron"])


def verify_cron_secret(request: Request) -> None:
    secret = get_config().cron.secret
    if not secret:
        return
    auth_header = request.headers.get("Authorization", "")
    if not hmac.compare_digest(auth_header.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
        logger.warning("Rejected cron request with bad credentials")
        raise AuthError("Unauthorized")


@router.api_route("/sync-vehicles", methods=["GET", "POST"])
async def sync_vehicles(
    request: Request,
    service: VehicleService = Depends(get_vehicle_service),
):
    """Refresh the server cache from Apps Script and report sync metrics."""
    verify_cron_secret(request)

    try:
        metrics = await service.sync_vehicles()
    except VehicleServiceError as e:
        logger.error(f"Vehicle sync failed: {e.message}")
        SyncStatus.record(False, e.message)
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": e.message,
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            },
        )

    SyncStatus.record(True)
    return {
        "ok": True,
        "message": "Vehicle sync completed",
        "metrics": metrics,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
