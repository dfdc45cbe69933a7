"""Vehicle list, detail and write endpoints.

Reads need any valid session; writes need the Admin role. Every response is
marked no-store so browsers and proxies never serve a stale list.
"""

import base64
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from api.auth import Session, require_admin, require_session
from services.vehicle_service import ImageUpload, VehicleService, get_vehicle_service, parse_max_rows

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/vehicles", tags=["Vehicles"])

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}

UPLOAD_MIME_TYPE = "image/webp"


def ok_response(content: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(content={"ok": True, **content}, headers=NO_STORE_HEADERS)


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Parse a JSON object body; anything unparsable becomes ``{}``."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def read_body(request: Request, file_field: Optional[str] = None) -> Tuple[Dict[str, Any], Optional[UploadFile]]:
    """
    Read a JSON or form body.

    For multipart, ``file_field`` names the part returned separately as an
    upload; other file parts are ignored.
    """
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type and "application/x-www-form-urlencoded" not in content_type:
        return await read_json_body(request), None

    form = await request.form()
    body: Dict[str, Any] = {}
    upload: Optional[UploadFile] = None
    for key, value in form.multi_items():
        if isinstance(value, str):
            body[key] = value
        elif file_field and key == file_field:
            upload = value
    return body, upload


@router.get("")
async def list_vehicles(
    lite: Optional[str] = Query(None),
    max_rows: Optional[str] = Query(None, alias="maxRows"),
    session: Session = Depends(require_session),
    service: VehicleService = Depends(get_vehicle_service),
):
    """
    List every vehicle with aggregate meta.

    ``lite=1`` drops market price fields; ``maxRows`` caps the rows returned
    without affecting ``meta``.
    """
    result = await service.list_vehicles(lite=lite == "1", max_rows=parse_max_rows(max_rows))
    return ok_response({"data": result.data, "meta": result.meta.to_dict()})


@router.post("")
async def create_vehicle(
    request: Request,
    session: Session = Depends(require_admin),
    service: VehicleService = Depends(get_vehicle_service),
):
    """Create a vehicle. An inline ``data:image/...`` Image is uploaded to Drive first."""
    service.client.ensure_configured()
    body, _ = await read_body(request)
    data = await service.create_vehicle(body)
    return ok_response({"data": data})


@router.post("/clear-cache")
async def clear_cache(service: VehicleService = Depends(get_vehicle_service)):
    """Drop the server-side list cache."""
    service.clear_cache()
    return ok_response({"message": "Cache cleared"})


@router.get("/{vehicle_id}")
async def get_vehicle(
    vehicle_id: str,
    session: Session = Depends(require_session),
    service: VehicleService = Depends(get_vehicle_service),
):
    vehicle = await service.get_vehicle(vehicle_id)
    return ok_response({"data": vehicle.to_dict()})


@router.put("/{vehicle_id}")
async def update_vehicle(
    vehicle_id: str,
    request: Request,
    session: Session = Depends(require_admin),
    service: VehicleService = Depends(get_vehicle_service),
):
    """
    Update a vehicle.

    Multipart requests may carry an ``image`` file part, stored as
    ``vehicle_<id>.webp`` and replacing the previous Drive file.
    """
    service.client.ensure_configured()
    body, upload = await read_body(request, file_field="image")

    image = None
    if upload is not None:
        content = await upload.read()
        image = ImageUpload(
            mime_type=UPLOAD_MIME_TYPE,
            base64_data=base64.b64encode(content).decode("ascii"),
        )

    data = await service.update_vehicle(vehicle_id, body, image=image)
    return ok_response({"data": data})


@router.delete("/{vehicle_id}")
async def delete_vehicle(
    vehicle_id: str,
    request: Request,
    session: Session = Depends(require_admin),
    service: VehicleService = Depends(get_vehicle_service),
):
    """Delete a vehicle and, when resolvable, its Drive image."""
    body = await read_json_body(request)
    data = await service.delete_vehicle(
        vehicle_id,
        image_file_id=body.get("imageFileId"),
        image_url=body.get("imageUrl"),
    )
    return ok_response({"data": data})
