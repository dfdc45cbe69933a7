"""
Vehicle Service - orchestration behind the /api/vehicles routes

Ties the Apps Script client, the pagination loop, the row normalizer and the
server cache together:

- list:    cache hit, or fetch every page -> normalize -> meta -> cache
- get:     getById fast path -> cache -> full scan -> NotFoundError
- create:  validate -> optional inline image upload -> add
- update:  validate -> optional image upload (replacing the old file) -> update
- delete:  resolve image file id (body -> getById -> cache -> scan) -> delete
- sync:    scheduled refresh of the cache with row validation and metrics

Every successful mutation clears the cache before returning.
"""

import logging
import math
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from core.config import AppConfig, DriveConfig, get_config
from core.errors import ConfigError, NotFoundError, UpstreamError, ValidationError
from core.logging_config import LogContext, log_with_fields
from models.vehicle import MarketPriceConfidence, Vehicle, VehicleCategory, VehicleCondition, VehicleMeta
from schemas.vehicle_columns import MARKET_PRICE_UPSTREAM_FIELDS
from services.apps_script import AppsScriptClient, UploadResponse
from services.drive import (
    drive_folder_id_for_category,
    drive_thumbnail_url,
    extension_for_mime,
    extract_drive_file_id,
    parse_image_data_url,
)
from services.local_time import normalize_time_string, now_string
from services.pagination import fetch_all_pages
from services.row_normalizer import normalize_rows, to_apps_script_payload, to_vehicle
from services.vehicle_cache import CacheStore, get_vehicle_cache

logger = logging.getLogger(__name__)

MAX_LIST_ROWS = 5000
MAX_LIST_IMAGE_LENGTH = 2048
MIN_YEAR = 1900

MARKET_PRICE_MIN = 10
MARKET_PRICE_MAX = 1_000_000
MARKET_CONFIDENCE_VALUES = [c.value for c in MarketPriceConfidence]

UPLOAD_SUPPORT_HINT = "Your Apps Script must support action=uploadImage to save images into Drive folders."
UNKNOWN_CATEGORY_MESSAGE = "Unknown category. Please select Cars, Motorcycles, or Tuk Tuk."
MISSING_TOKEN_MESSAGE = "Missing APPS_SCRIPT_UPLOAD_TOKEN. Set it to enable image updates."

# getById signals a missing record only through its error text
NOT_FOUND_PATTERN = re.compile(r"not\s*found", re.IGNORECASE)
ALREADY_GONE_PATTERN = re.compile(r"not\s*found|missing|already\s*deleted", re.IGNORECASE)


# =============================================================================
# INPUT HELPERS
# =============================================================================


def sanitize_string(value: Any, max_length: int = 1000) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()[:max_length]


def sanitize_number(value: Any) -> Optional[int]:
    """Parse a form/JSON number and truncate toward zero. Junk gives None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = re.match(r"^\s*([+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?)", value)
        if not match:
            return None
        parsed = float(match.group(1))
        return int(parsed) if math.isfinite(parsed) else None
    return None


def parse_max_rows(raw: Optional[str]) -> Optional[int]:
    """``maxRows`` query value: positive int capped at 5000, anything else None."""
    if raw is None or not raw.strip():
        return None
    match = re.match(r"^\s*([+-]?\d+)", raw)
    if not match:
        return None
    parsed = int(match.group(1))
    if parsed <= 0:
        return None
    return min(parsed, MAX_LIST_ROWS)


def sanitize_list_image(value: Any) -> str:
    """Drop inline data URLs and oversize values from list responses."""
    if not isinstance(value, str):
        return ""
    image = value.strip()
    if not image:
        return ""
    if image.startswith("data:image/"):
        return ""
    if len(image) > MAX_LIST_IMAGE_LENGTH:
        return ""
    return image


def _current_year() -> int:
    return datetime.now(timezone.utc).year


def validate_year_and_price(body: Dict[str, Any]) -> None:
    year = sanitize_number(body.get("Year"))
    price_new = sanitize_number(body.get("PriceNew"))

    if year is not None and (year < MIN_YEAR or year > _current_year() + 2):
        raise ValidationError("Invalid year")
    if price_new is not None and price_new < 0:
        raise ValidationError("Price must be positive")


def validate_create_input(body: Dict[str, Any]) -> None:
    category = sanitize_string(body.get("Category"), 50)
    brand = sanitize_string(body.get("Brand"), 100)
    model = sanitize_string(body.get("Model"), 100)

    if not category or not brand or not model:
        raise ValidationError("Category, Brand, and Model are required")

    validate_year_and_price(body)


def validate_vehicle_id(vehicle_id: Any) -> str:
    safe_id = sanitize_string(vehicle_id, 100)
    if not safe_id:
        raise ValidationError("Invalid vehicle ID")
    return safe_id


def safe_file_part(value: Any) -> str:
    part = sanitize_string(value, 32).lower()
    part = re.sub(r"[^a-z0-9]+", "-", part)
    return part.strip("-")


def build_upload_file_name(category: Any, brand: Any, model: Any, mime_type: str) -> str:
    """``<8 hex>-<category>-<brand>-<model>.<ext>`` with blank parts skipped."""
    prefix = str(uuid.uuid4()).split("-")[0]
    parts = [prefix, safe_file_part(category), safe_file_part(brand), safe_file_part(model)]
    return "-".join(p for p in parts if p) + "." + extension_for_mime(mime_type)


def resolve_uploaded_image_url(upload: UploadResponse) -> str:
    """Pick the stored image URL out of an uploadImage response, or raise 502."""
    payload = upload.payload
    error = payload.get("error")
    has_error = isinstance(error, str) and error.strip()
    upload_ok = upload.is_success and payload.get("ok") is not False

    if not upload_ok or has_error:
        message = error.strip() if has_error else f"Image upload failed ({upload.status_code})."
        raise UpstreamError(f"{message} {UPLOAD_SUPPORT_HINT}")

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    for candidate in (
        payload.get("url"),
        data.get("url"),
        data.get("thumbnailUrl"),
        payload.get("thumbnailUrl"),
        data.get("imageUrl"),
    ):
        if candidate is None:
            continue
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        break

    file_id = payload.get("fileId")
    if file_id is None:
        file_id = data.get("fileId")
    if isinstance(file_id, str) and file_id.strip():
        return drive_thumbnail_url(file_id.strip())

    raise UpstreamError("Image upload succeeded but no image URL was returned by Apps Script.")


# =============================================================================
# AGGREGATES
# =============================================================================


def compute_meta(vehicles: List[Vehicle]) -> VehicleMeta:
    """Aggregate over the complete list. ``total`` is the row count."""
    total = len(vehicles)
    price_sum = sum(v.price_new or 0 for v in vehicles)
    return VehicleMeta(
        total=total,
        counts_by_category={
            "Cars": sum(1 for v in vehicles if v.category == VehicleCategory.CARS.value),
            "Motorcycles": sum(1 for v in vehicles if v.category == VehicleCategory.MOTORCYCLES.value),
            "TukTuks": sum(1 for v in vehicles if v.category == VehicleCategory.TUK_TUK.value),
        },
        avg_price=price_sum / total if total else 0,
        no_image_count=sum(1 for v in vehicles if not v.image or not extract_drive_file_id(v.image)),
        counts_by_condition={
            "New": sum(1 for v in vehicles if v.condition == VehicleCondition.NEW.value),
            "Used": sum(1 for v in vehicles if v.condition == VehicleCondition.USED.value),
        },
    )


def project_for_list(vehicles: List[Vehicle], lite: bool = False, max_rows: Optional[int] = None) -> List[Dict[str, Any]]:
    """Response-only view: row cap, redacted images, optional market-field strip."""
    limited = vehicles[:max_rows] if max_rows else vehicles
    items = []
    for vehicle in limited:
        item = vehicle.to_dict(include_market=not lite)
        item["Image"] = sanitize_list_image(vehicle.image)
        items.append(item)
    return items


def is_valid_synced_vehicle(vehicle: Vehicle) -> bool:
    """Row check applied by the scheduled sync before caching."""
    for value in (vehicle.vehicle_id, vehicle.category, vehicle.brand, vehicle.model):
        if not value or not value.strip():
            return False
    if vehicle.year is not None and (vehicle.year < MIN_YEAR or vehicle.year > _current_year() + 2):
        return False
    if vehicle.price_new is not None and vehicle.price_new < 0:
        return False
    return True


def sanitize_confidence(value: Any) -> Optional[str]:
    if not value:
        return None
    normalized = str(value).strip().lower()
    return {"high": "High", "medium": "Medium", "low": "Low"}.get(normalized)


def sanitize_synced_vehicle(vehicle: Vehicle) -> Vehicle:
    return vehicle.copy(
        vehicle_id=vehicle.vehicle_id.strip(),
        category=vehicle.category.strip(),
        brand=vehicle.brand.strip(),
        model=vehicle.model.strip(),
        plate=vehicle.plate.strip(),
        tax_type=vehicle.tax_type.strip(),
        condition=vehicle.condition.strip(),
        body_type=vehicle.body_type.strip(),
        color=vehicle.color.strip(),
        image=vehicle.image.strip(),
        time=vehicle.time.strip(),
        market_price_confidence=sanitize_confidence(vehicle.market_price_confidence),
    )


# =============================================================================
# MARKET PRICE
# =============================================================================


def _market_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def validate_market_data(data: Dict[str, Any]) -> None:
    price_low = _market_number(data.get("priceLow"))
    price_median = _market_number(data.get("priceMedian"))
    price_high = _market_number(data.get("priceHigh"))
    confidence = sanitize_string(data.get("confidence"), 20)

    if confidence and confidence not in MARKET_CONFIDENCE_VALUES:
        raise ValidationError("Invalid confidence level")

    if price_low is not None and price_median is not None and price_low > price_median:
        raise ValidationError("priceLow cannot be greater than priceMedian")
    if price_high is not None and price_median is not None and price_high < price_median:
        raise ValidationError("priceHigh cannot be less than priceMedian")

    for name, value in (("priceLow", price_low), ("priceMedian", price_median), ("priceHigh", price_high)):
        if value is not None and (value < MARKET_PRICE_MIN or value > MARKET_PRICE_MAX):
            raise ValidationError(f"{name} out of reasonable range")


def build_market_price_update(data: Dict[str, Any], updated_by: str) -> Dict[str, Any]:
    def blank(value: Any) -> Any:
        return "" if value is None else value

    fields = MARKET_PRICE_UPSTREAM_FIELDS
    return {
        fields["low"]: blank(data.get("priceLow")),
        fields["median"]: blank(data.get("priceMedian")),
        fields["high"]: blank(data.get("priceHigh")),
        fields["source"]: blank(data.get("source")),
        fields["samples"]: blank(data.get("samples")),
        fields["confidence"]: blank(data.get("confidence")),
        fields["updated_at"]: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        fields["updated_by"]: updated_by,
    }


# =============================================================================
# SERVICE
# =============================================================================


@dataclass
class ImageUpload:
    """An image to store in Drive: mime type plus base64 payload."""
    mime_type: str
    base64_data: str


@dataclass
class ListResult:
    data: List[Dict[str, Any]]
    meta: VehicleMeta
    from_cache: bool


class VehicleService:
    """Vehicle operations against the Apps Script backend."""

    def __init__(
        self,
        client: AppsScriptClient,
        cache: CacheStore,
        drive_config: Optional[DriveConfig] = None,
    ):
        self.client = client
        self.cache = cache
        self.drive_config = drive_config or DriveConfig()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_vehicles(self) -> List[Vehicle]:
        """Read every page from upstream and normalize. Bypasses the cache."""
        result = await fetch_all_pages(self.client)
        vehicles = normalize_rows(result.rows)
        log_with_fields(
            logger,
            logging.INFO,
            "Fetched vehicles from Apps Script",
            pages=result.stats.pages,
            raw_rows=result.stats.raw_rows,
            vehicles=len(vehicles),
            stop=result.stats.stop_reason,
        )
        return vehicles

    async def load_vehicles(self) -> Tuple[List[Vehicle], bool]:
        """Return ``(vehicles, from_cache)``, populating the cache on a miss."""
        cached = self.cache.get()
        if cached is not None:
            return cached, True

        vehicles = await self.fetch_vehicles()
        self.cache.set(vehicles)
        return vehicles, False

    async def list_vehicles(self, lite: bool = False, max_rows: Optional[int] = None) -> ListResult:
        self.client.ensure_configured()
        vehicles, from_cache = await self.load_vehicles()
        meta = compute_meta(vehicles)
        return ListResult(
            data=project_for_list(vehicles, lite=lite, max_rows=max_rows),
            meta=meta,
            from_cache=from_cache,
        )

    async def _get_by_id_envelope(self, vehicle_id: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.get_by_id(vehicle_id, timeout=timeout)
        except UpstreamError as e:
            logger.debug(f"getById fast path unavailable for {vehicle_id}: {e}")
            return None

    async def get_vehicle(self, vehicle_id: str) -> Vehicle:
        safe_id = validate_vehicle_id(vehicle_id)
        self.client.ensure_configured()

        envelope = await self._get_by_id_envelope(safe_id)
        if envelope is not None:
            data = envelope.get("data")
            if envelope.get("ok") is not False and isinstance(data, dict) and data:
                vehicle = to_vehicle(data)
                if not vehicle.vehicle_id:
                    vehicle = vehicle.copy(vehicle_id=safe_id)
                return vehicle
            if envelope.get("ok") is False:
                message = envelope.get("error") if isinstance(envelope.get("error"), str) else ""
                if NOT_FOUND_PATTERN.search(message):
                    raise NotFoundError("Vehicle not found")

        cached = self.cache.get()
        if cached is not None:
            for vehicle in cached:
                if vehicle.vehicle_id == safe_id:
                    return vehicle

        vehicles = await self.fetch_vehicles()
        for vehicle in vehicles:
            if vehicle.vehicle_id == safe_id:
                return vehicle

        raise NotFoundError("Vehicle not found")

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()

    def _upload_folder(self, category: str, missing_token_message: str) -> str:
        """Resolve the Drive folder for ``category`` and check the upload token."""
        folder_id = drive_folder_id_for_category(category, self.drive_config)
        if not folder_id:
            raise ValidationError(UNKNOWN_CATEGORY_MESSAGE)
        if not self.client.upload_token:
            raise ConfigError(missing_token_message)
        return folder_id

    async def _upload(
        self,
        folder_id: str,
        category: str,
        image: ImageUpload,
        file_name: str,
        replace_file_id: Optional[str] = None,
    ) -> str:
        upload = await self.client.upload_image(
            folder_id=folder_id,
            category=category,
            mime_type=image.mime_type,
            file_name=file_name,
            base64_data=image.base64_data,
            replace_file_id=replace_file_id,
        )
        url = resolve_uploaded_image_url(upload)
        logger.info(f"Uploaded image {file_name} to folder {folder_id}")
        return url

    async def create_vehicle(self, body: Dict[str, Any]) -> Any:
        self.client.ensure_configured()
        validate_create_input(body)

        with LogContext(action="create"):
            payload = to_apps_script_payload(body)
            payload["Time"] = normalize_time_string(payload.get("Time")) or now_string()

            inline = parse_image_data_url(payload.get("Image"))
            if inline:
                mime_type, base64_data = inline
                file_name = build_upload_file_name(
                    payload["Category"], payload["Brand"], payload["Model"], mime_type
                )
                folder_id = self._upload_folder(payload["Category"], "Server configuration error")
                payload["Image"] = await self._upload(
                    folder_id,
                    payload["Category"],
                    ImageUpload(mime_type=mime_type, base64_data=base64_data),
                    file_name,
                )

            result = await self.client.add(payload)
            if result.get("ok") is False:
                error = result.get("error")
                message = error if isinstance(error, str) else "Apps Script returned ok=false"
                raise UpstreamError(message, status_code=500)

            self.clear_cache()
            logger.info(f"Created vehicle {payload['Brand']} {payload['Model']}")
            return result.get("data")

    async def _existing_image_file_id(self, vehicle_id: str, timeout: Optional[float] = None) -> Optional[str]:
        envelope = await self._get_by_id_envelope(vehicle_id, timeout=timeout)
        if envelope is None or envelope.get("ok") is False:
            return None
        data = envelope.get("data")
        if not isinstance(data, dict):
            return None
        return extract_drive_file_id(to_vehicle(data).image)

    async def update_vehicle(
        self,
        vehicle_id: str,
        body: Dict[str, Any],
        image: Optional[ImageUpload] = None,
    ) -> Any:
        safe_id = validate_vehicle_id(vehicle_id)
        self.client.ensure_configured()
        validate_year_and_price(body)

        with LogContext(vehicle_id=safe_id, action="update"):
            payload = to_apps_script_payload(body, vehicle_id=safe_id)
            normalized_time = normalize_time_string(payload.get("Time"))
            if normalized_time:
                payload["Time"] = normalized_time
            else:
                payload.pop("Time", None)

            file_name = f"vehicle_{safe_id}.webp"
            if image is None:
                inline = parse_image_data_url(payload.get("Image"))
                if inline:
                    image = ImageUpload(mime_type=inline[0], base64_data=inline[1])
                    file_name = f"vehicle_{safe_id}.{extension_for_mime(inline[0])}"

            if image is not None:
                folder_id = self._upload_folder(payload["Category"], MISSING_TOKEN_MESSAGE)
                existing_file_id = await self._existing_image_file_id(
                    safe_id, timeout=self.client.config.lookup_timeout
                )
                payload["Image"] = await self._upload(
                    folder_id,
                    payload["Category"],
                    image,
                    file_name,
                    replace_file_id=existing_file_id,
                )

            result = await self.client.update(safe_id, payload)
            if result.get("ok") is False:
                error = result.get("error")
                raise ValidationError(error if isinstance(error, str) and error else "Update failed")

            self.clear_cache()
            logger.info(f"Updated vehicle {safe_id}")
            return result.get("data", result)

    async def _resolve_image_file_id(
        self,
        vehicle_id: str,
        image_file_id: Any = None,
        image_url: Any = None,
    ) -> Optional[str]:
        """Best effort: body -> getById -> cache -> full scan. Never raises."""
        file_id = extract_drive_file_id(image_file_id) or extract_drive_file_id(image_url)
        if file_id:
            return file_id

        file_id = await self._existing_image_file_id(
            vehicle_id, timeout=self.client.config.lookup_timeout
        )
        if file_id:
            return file_id

        cached = self.cache.get()
        if cached is not None:
            for vehicle in cached:
                if vehicle.vehicle_id == vehicle_id:
                    return extract_drive_file_id(vehicle.image)

        try:
            vehicles = await self.fetch_vehicles()
        except UpstreamError as e:
            logger.warning(f"Image lookup scan failed for {vehicle_id}: {e}")
            return None
        for vehicle in vehicles:
            if vehicle.vehicle_id == vehicle_id:
                return extract_drive_file_id(vehicle.image)

        logger.info(f"No image file resolved for {vehicle_id}; deleting without image cleanup")
        return None

    async def delete_vehicle(
        self,
        vehicle_id: str,
        image_file_id: Any = None,
        image_url: Any = None,
    ) -> Any:
        safe_id = validate_vehicle_id(vehicle_id)
        self.client.ensure_configured()

        with LogContext(vehicle_id=safe_id, action="delete"):
            file_id = await self._resolve_image_file_id(safe_id, image_file_id, image_url)
            if file_id and not self.client.upload_token:
                raise ConfigError(MISSING_TOKEN_MESSAGE)

            result = await self.client.delete(safe_id, image_file_id=file_id)
            if result.get("ok") is False:
                error = result.get("error")
                message = error if isinstance(error, str) else ""
                if ALREADY_GONE_PATTERN.search(message):
                    self.clear_cache()
                    logger.info(f"Vehicle {safe_id} already gone upstream: {message}")
                    return None
                raise ValidationError(message or "Delete failed")

            self.clear_cache()
            logger.info(f"Deleted vehicle {safe_id} (image={file_id or 'none'})")
            return result.get("data")

    async def update_market_price(self, vehicle_id: Any, market_data: Any, updated_by: str) -> Dict[str, Any]:
        if not vehicle_id:
            raise ValidationError("Missing vehicleId")
        if not isinstance(market_data, dict):
            raise ValidationError("Missing or invalid marketData")
        validate_market_data(market_data)

        safe_id = sanitize_string(vehicle_id if isinstance(vehicle_id, str) else str(vehicle_id), 100)
        if not safe_id:
            raise ValidationError("Invalid vehicleId format")

        self.client.ensure_configured()
        if not self.client.upload_token:
            raise ConfigError("Server configuration error")

        with LogContext(vehicle_id=safe_id, action="market_price"):
            update = build_market_price_update(market_data, updated_by)
            await self.client.update_market_price(safe_id, update)

            self.clear_cache()
            logger.info(f"Updated market price for {safe_id}")
            return {
                "vehicleId": safe_id,
                "updated": True,
                "updatedAt": update[MARKET_PRICE_UPSTREAM_FIELDS["updated_at"]],
                "updatedBy": updated_by,
            }

    # -------------------------------------------------------------------------
    # Scheduled sync and health
    # -------------------------------------------------------------------------

    async def sync_vehicles(self) -> Dict[str, Any]:
        """Refresh the cache from upstream, dropping invalid rows. Returns metrics."""
        started = time.monotonic()
        self.client.ensure_configured()

        with LogContext(action="sync"):
            fetch_started = time.monotonic()
            vehicles = await self.fetch_vehicles()
            valid = [sanitize_synced_vehicle(v) for v in vehicles if is_valid_synced_vehicle(v)]
            fetch_duration = int((time.monotonic() - fetch_started) * 1000)

            self.cache.set(valid)
            meta = compute_meta(valid)
            total_duration = int((time.monotonic() - started) * 1000)

            metrics = {
                "vehicleCount": len(valid),
                "droppedCount": len(vehicles) - len(valid),
                "fetchDuration": fetch_duration,
                "totalDuration": total_duration,
                "categories": meta.counts_by_category,
                "conditions": meta.counts_by_condition,
                "avgPrice": meta.avg_price,
                "noImageCount": meta.no_image_count,
            }
            log_with_fields(logger, logging.INFO, "Vehicle sync completed", **metrics)
            return metrics

    async def check_upstream(self) -> Tuple[str, Optional[str]]:
        """Check the upstream. Returns ``(status, error)``; status is connected/disconnected/unknown."""
        if not self.client.config.base_url:
            return "unknown", None
        try:
            await self.client.ping()
        except UpstreamError as e:
            return "disconnected", str(e)
        return "connected", None

    def cache_status(self) -> Dict[str, Any]:
        cached = self.cache.get()
        return {
            "status": "hit" if cached is not None else "miss",
            "vehicleCount": len(cached) if cached is not None else 0,
            "ageMs": self.cache.age_ms() if cached is not None else None,
        }


# Singleton instance
_service: Optional[VehicleService] = None


def create_vehicle_service(config: Optional[AppConfig] = None, cache: Optional[CacheStore] = None) -> VehicleService:
    """Create a service from configuration."""
    config = config or get_config()
    return VehicleService(
        client=AppsScriptClient(config.upstream),
        cache=cache or get_vehicle_cache(),
        drive_config=config.drive,
    )


def get_vehicle_service() -> VehicleService:
    """Get or create the process-wide service instance."""
    global _service
    if _service is None:
        _service = create_vehicle_service()
    return _service


def set_vehicle_service(service: Optional[VehicleService]) -> None:
    """Replace the process-wide service (for testing)."""
    global _service
    _service = service
