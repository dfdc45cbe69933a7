"""
Server-side vehicle list cache.

One process-wide slot holding the last normalized vehicle list. An entry is
usable only while ``now - timestamp < ttl``; ``get()`` evicts lazily once it
is stale. A TTL of 0 disables caching entirely. Every successful mutation
calls ``clear()``. Instances do not coordinate across processes.

``VehicleService`` depends on the ``CacheStore`` protocol, so tests inject an
``InMemoryVehicleCache`` with a fake clock and a shared store could satisfy
the same interface later.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from core.config import get_config
from models.vehicle import Vehicle

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class CacheStore(Protocol):
    """Single-slot vehicle list store."""

    def get(self) -> Optional[List[Vehicle]]:
        ...

    def set(self, vehicles: List[Vehicle]) -> None:
        ...

    def clear(self) -> None:
        ...

    def age_ms(self) -> Optional[float]:
        ...


@dataclass
class CacheEntry:
    timestamp: float
    data: List[Vehicle]


class InMemoryVehicleCache:
    """TTL cache for the vehicle list, held in process memory."""

    def __init__(self, ttl_ms: int, clock: Optional[Clock] = None):
        self.ttl_ms = max(0, int(ttl_ms))
        self._clock = clock or _monotonic_ms
        self._entry: Optional[CacheEntry] = None

    @property
    def enabled(self) -> bool:
        return self.ttl_ms > 0

    def get(self) -> Optional[List[Vehicle]]:
        if self._entry is None:
            return None
        if not self.enabled:
            return None

        if self._clock() - self._entry.timestamp < self.ttl_ms:
            return self._entry.data

        logger.debug("Vehicle cache expired")
        self._entry = None
        return None

    def set(self, vehicles: List[Vehicle]) -> None:
        self._entry = CacheEntry(timestamp=self._clock(), data=vehicles)

    def clear(self) -> None:
        if self._entry is not None:
            logger.debug("Vehicle cache cleared")
        self._entry = None

    def age_ms(self) -> Optional[float]:
        """Age of the current entry, or None when the slot is empty."""
        if self._entry is None:
            return None
        return self._clock() - self._entry.timestamp


# Singleton instance
_cache: Optional[InMemoryVehicleCache] = None


def get_vehicle_cache() -> InMemoryVehicleCache:
    """Get the process-wide cache, sized from VEHICLES_CACHE_TTL_MS."""
    global _cache
    if _cache is None:
        _cache = InMemoryVehicleCache(ttl_ms=get_config().cache.ttl_ms)
    return _cache


def reset_vehicle_cache() -> None:
    """Drop the process-wide cache (for testing)."""
    global _cache
    _cache = None
