"""
Row Normalizer - spreadsheet rows to canonical vehicles and back

Raw rows come from the Apps Script ``getVehicles``/``getById`` actions with
whatever headers the sheet happens to use. This module is the only place
that interprets them:

1. ``to_vehicle`` maps a raw row to a ``Vehicle`` (never raises)
2. ``to_apps_script_payload`` maps caller input to an upstream write row,
   duplicating values under every legacy header
3. Category names are translated between sheet form ("Car") and display
   form ("Cars")
"""

import math
import re
from typing import Any, Dict, Iterable, List, Optional

from models.vehicle import Vehicle, VehicleCategory
from schemas.vehicle_columns import ROW_ID_KEYS, get_aliases, get_legacy_headers
from services.pricing import derive_prices

RawRow = Dict[str, Any]

_WHITESPACE = re.compile(r"\s+")

_MISSING = object()


# =============================================================================
# PRIMITIVE COERCION
# =============================================================================


def to_string_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_number_or_none(value: Any) -> Optional[float]:
    """Parse a sheet number. Accepts "12,500"; non-finite or junk gives None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    trimmed = value.strip()
    if not trimmed:
        return None
    try:
        parsed = float(trimmed.replace(",", ""))
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _to_int_or_none(value: Any) -> Optional[int]:
    number = to_number_or_none(value)
    if number is None:
        return None
    return int(number) if number.is_integer() else None


def _to_year(value: Any) -> Optional[int]:
    number = to_number_or_none(value)
    if number is None:
        return None
    return int(number)


def _to_flag(value: Any) -> bool:
    return value is True or value == "true"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


# =============================================================================
# TOLERANT LOOKUP
# =============================================================================


def normalize_key(key: str) -> str:
    return _WHITESPACE.sub("", key.lower())


def pick(row: RawRow, keys: Iterable[str]) -> Any:
    """
    Look up the first present key, tolerating header spelling drift.

    Exact keys are tried in order first. Failing that, every row key is
    normalized (lowercase, whitespace removed); the first row key per
    normalized form is kept and the aliases are retried against that map.
    Returns None when nothing matches.
    """
    keys = list(keys)
    for key in keys:
        if key in row:
            return row[key]

    normalized_row: Dict[str, Any] = {}
    for key, value in row.items():
        normalized = normalize_key(str(key))
        if not normalized or normalized in normalized_row:
            continue
        normalized_row[normalized] = value

    for key in keys:
        value = normalized_row.get(normalize_key(key), _MISSING)
        if value is not _MISSING:
            return value

    return None


def pick_field(row: RawRow, name: str) -> Any:
    return pick(row, get_aliases(name))


# =============================================================================
# CATEGORY
# =============================================================================


def normalize_category_from_sheet(value: Any) -> str:
    """Sheet form to display form: Car -> Cars. Unknown values pass through."""
    raw = to_string_value(value).strip()
    normalized = raw.lower()
    if not normalized:
        return ""

    if normalized in ("car", "cars"):
        return VehicleCategory.CARS.value
    if normalized in ("motorcycle", "motorcycles"):
        return VehicleCategory.MOTORCYCLES.value
    if normalized in ("tuktuk", "tuk tuk", "tuk-tuk"):
        return VehicleCategory.TUK_TUK.value

    return raw


def normalize_category_to_sheet(value: Any) -> str:
    """Display form to sheet form: Cars -> Car. Unknown values pass through."""
    raw = to_string_value(value).strip()
    normalized = raw.lower()
    if not normalized:
        return ""

    if normalized in ("cars", "car"):
        return "Car"
    if normalized in ("motorcycles", "motorcycle"):
        return "Motorcycle"
    if normalized in ("tuktuk", "tuk tuk", "tuk-tuk"):
        return "Tuk Tuk"

    return raw


# =============================================================================
# ROW -> VEHICLE
# =============================================================================


def row_has_identity(row: RawRow) -> bool:
    """True when a raw row has a non-blank id AND at least one other non-blank value."""
    id_key = None
    for key in ROW_ID_KEYS:
        if row.get(key):
            id_key = key
            break
    if id_key is None or to_string_value(row[id_key]).strip() == "":
        return False
    return any(
        value is not None and value != ""
        for key, value in row.items()
        if key != id_key
    )


def to_vehicle(row: RawRow) -> Vehicle:
    """Map a raw sheet row to a Vehicle. Missing or malformed fields become None/""."""
    if not isinstance(row, dict):
        row = {}

    price_new = to_number_or_none(pick_field(row, "PriceNew"))
    price_40 = to_number_or_none(pick_field(row, "Price40"))
    price_70 = to_number_or_none(pick_field(row, "Price70"))
    derived = derive_prices(price_new)

    confidence = pick_field(row, "MarketPriceConfidence")
    source = pick_field(row, "MarketPriceSource")
    updated_at = pick_field(row, "MarketPriceUpdatedAt")

    return Vehicle(
        vehicle_id=to_string_value(pick_field(row, "VehicleId")).strip(),
        category=normalize_category_from_sheet(pick_field(row, "Category")),
        brand=to_string_value(pick_field(row, "Brand")),
        model=to_string_value(pick_field(row, "Model")),
        year=_to_year(pick_field(row, "Year")),
        plate=to_string_value(pick_field(row, "Plate")),
        price_new=price_new,
        price_40=price_40 if price_40 is not None else derived["Price40"],
        price_70=price_70 if price_70 is not None else derived["Price70"],
        tax_type=to_string_value(pick_field(row, "TaxType")),
        condition=to_string_value(pick_field(row, "Condition")),
        body_type=to_string_value(pick_field(row, "BodyType")),
        color=to_string_value(pick_field(row, "Color")),
        image=to_string_value(pick_field(row, "Image")),
        time=to_string_value(pick_field(row, "Time")),
        fast=_to_flag(pick_field(row, "Fast")),
        market_price_low=to_number_or_none(pick_field(row, "MarketPriceLow")),
        market_price_median=to_number_or_none(pick_field(row, "MarketPriceMedian")),
        market_price_high=to_number_or_none(pick_field(row, "MarketPriceHigh")),
        market_price_source=None if _is_blank(source) else to_string_value(source),
        market_price_samples=_to_int_or_none(pick_field(row, "MarketPriceSamples")),
        market_price_confidence=None if _is_blank(confidence) else to_string_value(confidence),
        market_price_updated_at=None if _is_blank(updated_at) else to_string_value(updated_at),
    )


def normalize_rows(rows: Iterable[RawRow]) -> List[Vehicle]:
    """Normalize rows, dropping any that end up without a VehicleId."""
    vehicles = []
    for row in rows:
        vehicle = to_vehicle(row)
        if vehicle.vehicle_id:
            vehicles.append(vehicle)
    return vehicles


# =============================================================================
# INPUT -> UPSTREAM PAYLOAD
# =============================================================================


def _blank_if_none(value: Optional[float]) -> Any:
    if value is None:
        return ""
    return int(value) if float(value).is_integer() else value


def to_apps_script_payload(data: Dict[str, Any], vehicle_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the row written by the upstream ``add``/``update`` actions.

    Accepts canonical keys or any historical header. Missing numbers are
    sent as "" so the sheet cell is cleared rather than set to "None".
    Every value with legacy headers is duplicated under each of them.
    """
    if vehicle_id is None:
        vehicle_id = to_string_value(pick_field(data, "VehicleId"))

    price_new = to_number_or_none(pick_field(data, "PriceNew"))
    derived = derive_prices(price_new)
    price_40 = to_number_or_none(pick_field(data, "Price40"))
    if price_40 is None:
        price_40 = derived["Price40"]
    price_70 = to_number_or_none(pick_field(data, "Price70"))
    if price_70 is None:
        price_70 = derived["Price70"]

    year = to_number_or_none(pick_field(data, "Year"))
    tax_type = to_string_value(pick_field(data, "TaxType"))
    body_type = to_string_value(pick_field(data, "BodyType"))

    payload: Dict[str, Any] = {
        "VehicleId": vehicle_id,
        "Category": normalize_category_to_sheet(pick_field(data, "Category")),
        "Brand": to_string_value(pick_field(data, "Brand")),
        "Model": to_string_value(pick_field(data, "Model")),
        "Year": _blank_if_none(year),
        "Plate": to_string_value(pick_field(data, "Plate")),
        "Condition": to_string_value(pick_field(data, "Condition")),
        "Color": to_string_value(pick_field(data, "Color")),
        "Image": to_string_value(pick_field(data, "Image")),
        "Time": to_string_value(pick(data, ["Time"])),
        "Fast": _to_flag(pick_field(data, "Fast")),
        "PriceNew": _blank_if_none(price_new),
        "Price40": _blank_if_none(price_40),
        "Price70": _blank_if_none(price_70),
        "TaxType": tax_type,
        "BodyType": body_type,
    }

    for name in ("VehicleId", "PriceNew", "Price40", "Price70", "TaxType", "BodyType"):
        for header in get_legacy_headers(name):
            payload[header] = payload[name]

    return payload


def vehicle_to_payload(vehicle: Vehicle) -> Dict[str, Any]:
    """Upstream payload for a full Vehicle (the transient marker is dropped)."""
    return to_apps_script_payload(vehicle.to_dict(include_market=False), vehicle_id=vehicle.vehicle_id)
