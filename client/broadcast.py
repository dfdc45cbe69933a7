"""
Vehicle list broadcast and snapshot persistence.

``VehicleListChannel`` is an in-process observer registry carrying one kind
of message: "the vehicle list was replaced with X". A component that
mutates the list publishes the new list; every subscribed ``VehicleSync``
adopts it without a network round trip.

The JSON snapshot keeps the last list on disk so a fresh process can show
something before its first fetch completes.
"""

import json
import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

from models.vehicle import Vehicle

logger = logging.getLogger(__name__)

Listener = Callable[[List[Vehicle]], None]


class VehicleListChannel:
    """Publish/subscribe registry for vehicle list replacements."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, vehicles: List[Vehicle]) -> None:
        for listener in list(self._listeners):
            try:
                listener(list(vehicles))
            except Exception:
                logger.exception("Vehicle list listener failed")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


# Singleton instance
_channel: Optional[VehicleListChannel] = None


def get_vehicle_list_channel() -> VehicleListChannel:
    """Get the process-wide channel."""
    global _channel
    if _channel is None:
        _channel = VehicleListChannel()
    return _channel


def reset_vehicle_list_channel() -> None:
    """Drop the process-wide channel (for testing)."""
    global _channel
    _channel = None


# =============================================================================
# SNAPSHOT
# =============================================================================


def read_snapshot(path: Union[str, Path]) -> Optional[List[Vehicle]]:
    """Load a saved list. Missing or unreadable snapshots give None."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable vehicle snapshot {path}: {e}")
        return None
    if not isinstance(data, list):
        return None
    return [Vehicle.from_dict(item) for item in data if isinstance(item, dict)]


def write_snapshot(path: Union[str, Path], vehicles: List[Vehicle]) -> bool:
    """Save the list as JSON. Returns False when the file could not be written."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps([v.to_dict() for v in vehicles], ensure_ascii=False),
            encoding="utf-8",
        )
    except OSError as e:
        logger.warning(f"Could not write vehicle snapshot {path}: {e}")
        return False
    return True
