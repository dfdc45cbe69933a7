"""Services for the vehicle inventory."""

from services.apps_script import AppsScriptClient, PageMeta, UploadResponse, VehiclePage
from services.pagination import FetchResult, FetchStats, fetch_all_pages, fetch_all_rows
from services.row_normalizer import normalize_rows, to_apps_script_payload, to_vehicle
from services.vehicle_cache import CacheStore, InMemoryVehicleCache, get_vehicle_cache, reset_vehicle_cache
from services.vehicle_service import (
    ImageUpload,
    ListResult,
    VehicleService,
    compute_meta,
    create_vehicle_service,
    get_vehicle_service,
    set_vehicle_service,
)

__all__ = [
    # Apps Script
    "AppsScriptClient",
    "PageMeta",
    "UploadResponse",
    "VehiclePage",
    # Pagination
    "FetchResult",
    "FetchStats",
    "fetch_all_pages",
    "fetch_all_rows",
    # Row normalizer
    "normalize_rows",
    "to_apps_script_payload",
    "to_vehicle",
    # Cache
    "CacheStore",
    "InMemoryVehicleCache",
    "get_vehicle_cache",
    "reset_vehicle_cache",
    # Vehicle service
    "ImageUpload",
    "ListResult",
    "VehicleService",
    "compute_meta",
    "create_vehicle_service",
    "get_vehicle_service",
    "set_vehicle_service",
]
