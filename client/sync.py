"""
Vehicle Sync - client-side view of the vehicle list

Holds ``vehicles``, ``meta``, ``loading``, ``error`` and ``last_sync_time``
for whatever renders the list. ``refetch()`` replaces the state wholesale on
success; on failure it stores a readable message and clears the list so an
error is never shown next to stale aggregates.

Each refetch bumps a generation counter and cancels the previous in-flight
request; a response whose generation is no longer current is dropped.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from client.api_client import VehicleApiClient, get_error_message
from client.broadcast import VehicleListChannel, get_vehicle_list_channel, read_snapshot, write_snapshot
from models.vehicle import Vehicle, VehicleMeta
from services.vehicle_service import compute_meta

logger = logging.getLogger(__name__)


class VehicleSync:
    """Fetches the vehicle list and keeps it current."""

    def __init__(
        self,
        api: VehicleApiClient,
        channel: Optional[VehicleListChannel] = None,
        snapshot_path: Optional[Union[str, Path]] = None,
        lite: bool = False,
    ):
        self.api = api
        self.channel = channel or get_vehicle_list_channel()
        self.snapshot_path = snapshot_path
        self.lite = lite

        self.vehicles: List[Vehicle] = []
        self.meta: Optional[VehicleMeta] = None
        self.loading = False
        self.error: Optional[str] = None
        self.last_sync_time: Optional[datetime] = None

        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def generation(self) -> int:
        return self._generation

    async def start(self) -> None:
        """Show the saved snapshot (if any), subscribe to broadcasts, then fetch."""
        if self.snapshot_path and not self.vehicles:
            snapshot = read_snapshot(self.snapshot_path)
            if snapshot is not None:
                self.vehicles = snapshot

        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self._on_broadcast)

        await self.refetch()

    def stop(self) -> None:
        """Unsubscribe and cancel any in-flight request; a pending refetch returns quietly."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._generation += 1
        self.loading = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def refetch(self) -> None:
        """Fetch the list. Never raises; failures land in ``error``."""
        self._generation += 1
        generation = self._generation

        if self._task is not None and not self._task.done():
            self._task.cancel()

        self.loading = True
        self.error = None
        task = asyncio.ensure_future(self.api.get_vehicles(lite=self.lite))
        self._task = task

        try:
            vehicles, meta = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.debug(f"Vehicle fetch {generation} superseded")
                return
            raise
        except Exception as e:
            if generation != self._generation:
                return
            logger.warning(f"Vehicle fetch failed: {e}")
            self.error = get_error_message(e)
            self.vehicles = []
            self.meta = None
        else:
            if generation != self._generation:
                logger.debug(f"Dropping stale vehicle response {generation}")
                return
            self.vehicles = vehicles
            self.meta = meta
            self.last_sync_time = datetime.now(timezone.utc)
            if self.snapshot_path:
                write_snapshot(self.snapshot_path, vehicles)
        finally:
            if generation == self._generation:
                self.loading = False

    def set_local_state(self, vehicles: List[Vehicle], meta: Optional[VehicleMeta]) -> None:
        """Replace the visible list without a fetch (used by optimistic mutations)."""
        self.vehicles = vehicles
        self.meta = meta

    def _on_broadcast(self, vehicles: List[Vehicle]) -> None:
        self.vehicles = vehicles
        self.meta = compute_meta(vehicles)
        self.error = None
