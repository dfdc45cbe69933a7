"""Data models for the vehicle inventory."""
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any
from enum import Enum


class VehicleCategory(Enum):
    """Display form of the three known categories."""
    CARS = "Cars"
    MOTORCYCLES = "Motorcycles"
    TUK_TUK = "Tuk Tuk"


class VehicleCondition(Enum):
    NEW = "New"
    USED = "Used"


class MarketPriceConfidence(Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    UNKNOWN = "Unknown"


# Canonical wire key for each dataclass attribute, in response order.
WIRE_KEYS = {
    "vehicle_id": "VehicleId",
    "category": "Category",
    "brand": "Brand",
    "model": "Model",
    "year": "Year",
    "plate": "Plate",
    "price_new": "PriceNew",
    "price_40": "Price40",
    "price_70": "Price70",
    "tax_type": "TaxType",
    "condition": "Condition",
    "body_type": "BodyType",
    "color": "Color",
    "image": "Image",
    "time": "Time",
    "fast": "Fast",
    "market_price_low": "MarketPriceLow",
    "market_price_median": "MarketPriceMedian",
    "market_price_high": "MarketPriceHigh",
    "market_price_source": "MarketPriceSource",
    "market_price_samples": "MarketPriceSamples",
    "market_price_confidence": "MarketPriceConfidence",
    "market_price_updated_at": "MarketPriceUpdatedAt",
}

MARKET_PRICE_KEYS = [
    "MarketPriceLow",
    "MarketPriceMedian",
    "MarketPriceHigh",
    "MarketPriceSource",
    "MarketPriceSamples",
    "MarketPriceConfidence",
    "MarketPriceUpdatedAt",
]

DELETED_KEY = "_deleted"


@dataclass
class Vehicle:
    """Canonical vehicle record.

    Everything outside the row normalizer works with this type; raw
    spreadsheet rows never travel further than ``services.row_normalizer``.
    """
    vehicle_id: str
    category: str = ""
    brand: str = ""
    model: str = ""
    year: Optional[int] = None
    plate: str = ""
    price_new: Optional[float] = None
    price_40: Optional[float] = None
    price_70: Optional[float] = None
    tax_type: str = ""
    condition: str = ""
    body_type: str = ""
    color: str = ""
    image: str = ""
    time: str = ""
    fast: bool = False

    # Market price research (optional)
    market_price_low: Optional[float] = None
    market_price_median: Optional[float] = None
    market_price_high: Optional[float] = None
    market_price_source: Optional[str] = None
    market_price_samples: Optional[int] = None
    market_price_confidence: Optional[str] = None
    market_price_updated_at: Optional[str] = None

    # Transient optimistic-delete marker, never sent upstream
    deleted: bool = False

    @property
    def has_market_price(self) -> bool:
        return any(
            getattr(self, attr) is not None
            for attr in WIRE_KEYS
            if attr.startswith("market_price_")
        )

    def to_dict(self, include_market: bool = True) -> Dict[str, Any]:
        """Convert to the canonical wire format.

        Market price fields are emitted only when set; ``_deleted`` only
        when the record carries the transient marker.
        """
        data: Dict[str, Any] = {}
        for attr, key in WIRE_KEYS.items():
            value = getattr(self, attr)
            if attr.startswith("market_price_"):
                if not include_market or value is None:
                    continue
            data[key] = value
        if self.deleted:
            data[DELETED_KEY] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vehicle":
        """Build from canonical wire keys. Unknown keys are ignored."""
        kwargs: Dict[str, Any] = {}
        for attr, key in WIRE_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
        kwargs.setdefault("vehicle_id", "")
        kwargs["vehicle_id"] = str(kwargs["vehicle_id"] or "")
        kwargs["fast"] = bool(kwargs.get("fast", False))
        kwargs["deleted"] = bool(data.get(DELETED_KEY, False))
        return cls(**kwargs)

    def merged(self, patch: Dict[str, Any]) -> "Vehicle":
        """Return a copy with wire-keyed ``patch`` values applied."""
        changes = {}
        for attr, key in WIRE_KEYS.items():
            if key in patch and attr != "vehicle_id":
                changes[attr] = patch[key]
        return replace(self, **changes)

    def copy(self, **changes: Any) -> "Vehicle":
        return replace(self, **changes)


@dataclass
class VehicleMeta:
    """Aggregates over the complete normalized dataset."""
    total: int = 0
    counts_by_category: Dict[str, int] = field(
        default_factory=lambda: {"Cars": 0, "Motorcycles": 0, "TukTuks": 0}
    )
    avg_price: float = 0.0
    no_image_count: int = 0
    counts_by_condition: Dict[str, int] = field(
        default_factory=lambda: {"New": 0, "Used": 0}
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "countsByCategory": dict(self.counts_by_category),
            "avgPrice": self.avg_price,
            "noImageCount": self.no_image_count,
            "countsByCondition": dict(self.counts_by_condition),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VehicleMeta":
        return cls(
            total=int(data.get("total", 0) or 0),
            counts_by_category=dict(data.get("countsByCategory") or {"Cars": 0, "Motorcycles": 0, "TukTuks": 0}),
            avg_price=float(data.get("avgPrice", 0) or 0),
            no_image_count=int(data.get("noImageCount", 0) or 0),
            counts_by_condition=dict(data.get("countsByCondition") or {"New": 0, "Used": 0}),
        )
