"""
Vehicle Sheet Columns - historical header spellings

The Apps Script spreadsheet has been edited by hand over the years, so one
logical field can appear under several header names depending on which
deployment a row came from. This module is the single place those spellings
are listed.

Lookup Rule:
- try every alias as an exact key, in order
- then retry each alias against the row keys normalized by lowercasing and
  stripping all whitespace (first row key wins per normalized form)

Write Rule:
- the payload builder emits the canonical key AND every legacy header in
  ``legacy_headers`` so any sheet layout receives the value
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ColumnType(Enum):
    """Column data type."""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    CATEGORY = "category"
    TIMESTAMP = "timestamp"  # YYYY-MM-DD HH:MM:SS, Asia/Phnom_Penh


@dataclass
class ColumnDef:
    """Column definition."""
    name: str
    col_type: ColumnType
    aliases: List[str] = field(default_factory=list)
    legacy_headers: List[str] = field(default_factory=list)
    description: str = ""

    def lookup_keys(self) -> List[str]:
        """Keys tried by the normalizer, canonical name first."""
        if self.aliases:
            return list(self.aliases)
        return [self.name]


# =============================================================================
# SCHEMA DEFINITION
# =============================================================================

SCHEMA_VERSION = 1

ID_KEYS = ["VehicleId", "VehicleID", "Id", "id"]

# Row filter in the pagination loop also accepts the sheet's row-number column.
ROW_ID_KEYS = ID_KEYS + ["#"]

COLUMNS: List[ColumnDef] = [
    ColumnDef(
        name="VehicleId",
        col_type=ColumnType.STRING,
        aliases=ID_KEYS,
        legacy_headers=["id", "VehicleID"],
        description="Stable external identifier assigned by the sheet",
    ),
    ColumnDef(
        name="Category",
        col_type=ColumnType.CATEGORY,
        description="Stored singular (Car); displayed plural (Cars)",
    ),
    ColumnDef(name="Brand", col_type=ColumnType.STRING),
    ColumnDef(name="Model", col_type=ColumnType.STRING),
    ColumnDef(name="Year", col_type=ColumnType.INTEGER),
    ColumnDef(
        name="Plate",
        col_type=ColumnType.STRING,
        aliases=["Plate", "PlateNumber", "Plate Number"],
    ),
    ColumnDef(
        name="PriceNew",
        col_type=ColumnType.NUMBER,
        aliases=["PriceNew", "Market Price", "Price New", "Price (New)"],
        legacy_headers=["Price New", "Market Price"],
        description="Market price of the vehicle",
    ),
    ColumnDef(
        name="Price40",
        col_type=ColumnType.NUMBER,
        aliases=["Price40", "D.O.C.40%", "D.O.C.1 40%", "Price 40%", "Price 40", "Price40%"],
        legacy_headers=["Price 40%", "D.O.C.1 40%", "D.O.C.40%"],
        description="40% of PriceNew unless stored explicitly",
    ),
    ColumnDef(
        name="Price70",
        col_type=ColumnType.NUMBER,
        aliases=["Price70", "Vehicles70%", "Vehicle 70%", "Vihicle 70%", "Price 70%", "Price 70", "Price70%"],
        legacy_headers=["Price 70%", "Vehicle 70%", "Vehicles70%"],
        description="70% of PriceNew unless stored explicitly",
    ),
    ColumnDef(
        name="TaxType",
        col_type=ColumnType.STRING,
        aliases=["TaxType", "Tax Type"],
        legacy_headers=["Tax Type"],
    ),
    ColumnDef(name="Condition", col_type=ColumnType.STRING),
    ColumnDef(
        name="BodyType",
        col_type=ColumnType.STRING,
        aliases=["BodyType", "Body Type"],
        legacy_headers=["Body Type"],
    ),
    ColumnDef(name="Color", col_type=ColumnType.STRING),
    ColumnDef(
        name="Image",
        col_type=ColumnType.STRING,
        aliases=["Image", "ImageURL", "Image URL"],
        description="Drive thumbnail URL or empty",
    ),
    ColumnDef(
        name="Time",
        col_type=ColumnType.TIMESTAMP,
        aliases=["Time", "Added Time"],
    ),
    ColumnDef(name="Fast", col_type=ColumnType.BOOLEAN),
    # Market price research, written by the updateMarketPrice action
    ColumnDef(
        name="MarketPriceLow",
        col_type=ColumnType.NUMBER,
        aliases=["MarketPriceLow", "MARKET_PRICE_LOW"],
    ),
    ColumnDef(
        name="MarketPriceMedian",
        col_type=ColumnType.NUMBER,
        aliases=["MarketPriceMedian", "MARKET_PRICE_MEDIAN"],
    ),
    ColumnDef(
        name="MarketPriceHigh",
        col_type=ColumnType.NUMBER,
        aliases=["MarketPriceHigh", "MARKET_PRICE_HIGH"],
    ),
    ColumnDef(
        name="MarketPriceSource",
        col_type=ColumnType.STRING,
        aliases=["MarketPriceSource", "MARKET_PRICE_SOURCE"],
    ),
    ColumnDef(
        name="MarketPriceSamples",
        col_type=ColumnType.INTEGER,
        aliases=["MarketPriceSamples", "MARKET_PRICE_SAMPLES"],
    ),
    ColumnDef(
        name="MarketPriceConfidence",
        col_type=ColumnType.STRING,
        aliases=["MarketPriceConfidence", "MARKET_PRICE_CONFIDENCE"],
    ),
    ColumnDef(
        name="MarketPriceUpdatedAt",
        col_type=ColumnType.TIMESTAMP,
        aliases=["MarketPriceUpdatedAt", "MARKET_PRICE_UPDATED_AT"],
    ),
]

# Upstream field names used by the updateMarketPrice action
MARKET_PRICE_UPSTREAM_FIELDS = {
    "low": "MARKET_PRICE_LOW",
    "median": "MARKET_PRICE_MEDIAN",
    "high": "MARKET_PRICE_HIGH",
    "source": "MARKET_PRICE_SOURCE",
    "samples": "MARKET_PRICE_SAMPLES",
    "confidence": "MARKET_PRICE_CONFIDENCE",
    "updated_at": "MARKET_PRICE_UPDATED_AT",
    "updated_by": "MARKET_PRICE_UPDATED_BY",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

_COLUMNS_BY_NAME: Dict[str, ColumnDef] = {col.name: col for col in COLUMNS}


def get_column_names() -> List[str]:
    """Get canonical column names in schema order."""
    return [col.name for col in COLUMNS]


def get_column_by_name(name: str) -> Optional[ColumnDef]:
    """Get column definition by canonical name."""
    return _COLUMNS_BY_NAME.get(name)


def get_aliases(name: str) -> List[str]:
    """Get the ordered lookup keys for a canonical column."""
    col = _COLUMNS_BY_NAME.get(name)
    if col is None:
        return [name]
    return col.lookup_keys()


def get_legacy_headers(name: str) -> List[str]:
    """Get the legacy headers a written value is duplicated under."""
    col = _COLUMNS_BY_NAME.get(name)
    return list(col.legacy_headers) if col else []


SCHEMA_INFO = {
    "version": SCHEMA_VERSION,
    "total_columns": len(COLUMNS),
    "id_keys": ID_KEYS,
}
