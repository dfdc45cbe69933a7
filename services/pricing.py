"""Derived price helpers (40% / 70% of the market price)."""
import math
import sys
from typing import Dict, Optional

PRICE_40_RATIO = 0.4
PRICE_70_RATIO = 0.7


def round_to(value: float, decimals: int = 2) -> float:
    """Round half away from zero at ``decimals`` places, clamped to 0..6."""
    safe_decimals = max(0, min(6, int(decimals)))
    factor = 10 ** safe_decimals
    scaled = (value + sys.float_info.epsilon) * factor
    # half-up, not round()'s half-to-even
    return math.floor(scaled + 0.5) / factor


def percent_of_price(price: Optional[float], percent: float, decimals: int = 2) -> Optional[float]:
    if price is None:
        return None
    if not math.isfinite(price) or not math.isfinite(percent):
        return None
    return round_to(price * percent, decimals)


def derive_price_40(price_new: Optional[float]) -> Optional[float]:
    return percent_of_price(price_new, PRICE_40_RATIO)


def derive_price_70(price_new: Optional[float]) -> Optional[float]:
    return percent_of_price(price_new, PRICE_70_RATIO)


def derive_prices(price_new: Optional[float]) -> Dict[str, Optional[float]]:
    """Return ``{"Price40": ..., "Price70": ...}`` for a market price."""
    return {"Price40": derive_price_40(price_new), "Price70": derive_price_70(price_new)}
