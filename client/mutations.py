"""
Optimistic Mutations - update/delete with local-first state

Each call walks one ``Mutation`` through

    IDLE -> APPLIED -> CONFIRMED     (server accepted)
    IDLE -> APPLIED -> ROLLED_BACK   (server rejected)

The list change is applied to the ``VehicleSync`` before the request is
sent. The record to restore is captured when the call starts. Callers must
not start a second mutation for a vehicle while one is pending.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from client.api_client import VehicleApiClient, get_error_message
from client.broadcast import VehicleListChannel, get_vehicle_list_channel
from client.sync import VehicleSync
from models.vehicle import Vehicle

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, Vehicle], None]
SuccessCallback = Callable[[Vehicle], None]


class MutationState(str, Enum):
    IDLE = "idle"
    APPLIED = "applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class MutationKind(str, Enum):
    UPDATE = "update"
    DELETE = "delete"


class InvalidTransitionError(Exception):
    """A mutation was moved out of order."""


@dataclass
class Mutation:
    """One optimistic change and the snapshot that undoes it."""
    kind: MutationKind
    vehicle_id: str
    snapshot: Vehicle
    index: Optional[int] = None
    state: MutationState = MutationState.IDLE
    error: Optional[str] = None


def _transition(mutation: Mutation, expected: MutationState, new_state: MutationState) -> None:
    if mutation.state != expected:
        raise InvalidTransitionError(
            f"Cannot move {mutation.kind.value} mutation from {mutation.state.value} to {new_state.value}"
        )
    mutation.state = new_state


def _index_of(vehicles: List[Vehicle], vehicle_id: str) -> Optional[int]:
    for i, vehicle in enumerate(vehicles):
        if vehicle.vehicle_id == vehicle_id:
            return i
    return None


# =============================================================================
# TRANSITIONS
# =============================================================================


def apply_update(sync: VehicleSync, mutation: Mutation, patch: Dict[str, Any]) -> None:
    """Patch-merge the vehicle in the visible list."""
    _transition(mutation, MutationState.IDLE, MutationState.APPLIED)
    vehicles = [
        v.merged(patch) if v.vehicle_id == mutation.vehicle_id else v
        for v in sync.vehicles
    ]
    sync.set_local_state(vehicles, sync.meta)


def apply_delete(sync: VehicleSync, mutation: Mutation) -> None:
    """Remove the vehicle from the visible list and decrement ``meta.total``."""
    _transition(mutation, MutationState.IDLE, MutationState.APPLIED)
    mutation.index = _index_of(sync.vehicles, mutation.vehicle_id)
    if mutation.index is None:
        return

    vehicles = [v for v in sync.vehicles if v.vehicle_id != mutation.vehicle_id]
    meta = sync.meta
    if meta is not None:
        meta = replace(meta, total=max(0, meta.total - 1))
    sync.set_local_state(vehicles, meta)


def confirm(mutation: Mutation) -> None:
    _transition(mutation, MutationState.APPLIED, MutationState.CONFIRMED)


def rollback_update(sync: VehicleSync, mutation: Mutation) -> None:
    """Put the original record back in place of the patched one."""
    _transition(mutation, MutationState.APPLIED, MutationState.ROLLED_BACK)
    vehicles = [
        mutation.snapshot if v.vehicle_id == mutation.vehicle_id else v
        for v in sync.vehicles
    ]
    sync.set_local_state(vehicles, sync.meta)


def rollback_delete(sync: VehicleSync, mutation: Mutation) -> None:
    """Reinsert the removed vehicle at its old position unless it is already back."""
    _transition(mutation, MutationState.APPLIED, MutationState.ROLLED_BACK)
    if mutation.index is None:
        return
    if _index_of(sync.vehicles, mutation.vehicle_id) is not None:
        return

    vehicles = list(sync.vehicles)
    vehicles.insert(min(mutation.index, len(vehicles)), mutation.snapshot)
    meta = sync.meta
    if meta is not None:
        meta = replace(meta, total=meta.total + 1)
    sync.set_local_state(vehicles, meta)


# =============================================================================
# MUTATIONS
# =============================================================================


class OptimisticMutations:
    """Update and delete vehicles through a ``VehicleSync``, rolling back on failure."""

    def __init__(
        self,
        sync: VehicleSync,
        api: Optional[VehicleApiClient] = None,
        channel: Optional[VehicleListChannel] = None,
        on_error: Optional[ErrorCallback] = None,
        on_success: Optional[SuccessCallback] = None,
    ):
        self.sync = sync
        self.api = api or sync.api
        self.channel = channel or sync.channel
        self.on_error = on_error
        self.on_success = on_success

    def _confirmed(self, mutation: Mutation, vehicle: Vehicle) -> None:
        confirm(mutation)
        self.channel.publish(self.sync.vehicles)
        if self.on_success:
            self.on_success(vehicle)

    def _failed(self, mutation: Mutation, error: Exception) -> None:
        mutation.error = get_error_message(error)
        logger.warning(f"{mutation.kind.value} of vehicle {mutation.vehicle_id} rolled back: {error}")
        if self.on_error:
            self.on_error(mutation.error, mutation.snapshot)

    async def update_vehicle(
        self,
        vehicle_id: str,
        patch: Dict[str, Any],
        original: Vehicle,
        image_file: Optional[bytes] = None,
    ) -> Mutation:
        """Apply ``patch`` locally, then PUT the merged record."""
        mutation = Mutation(kind=MutationKind.UPDATE, vehicle_id=vehicle_id, snapshot=original.copy())
        apply_update(self.sync, mutation, patch)

        updated = original.merged(patch)
        try:
            await self.api.update_vehicle(vehicle_id, updated.to_dict(include_market=False), image_file=image_file)
        except Exception as e:
            rollback_update(self.sync, mutation)
            self._failed(mutation, e)
            return mutation

        self._confirmed(mutation, updated)
        return mutation

    async def delete_vehicle(self, vehicle: Vehicle) -> Mutation:
        """Remove ``vehicle`` locally, then DELETE it with its image reference."""
        mutation = Mutation(kind=MutationKind.DELETE, vehicle_id=vehicle.vehicle_id, snapshot=vehicle.copy())
        apply_delete(self.sync, mutation)

        try:
            await self.api.delete_vehicle(vehicle.vehicle_id, image_url=vehicle.image or None)
        except Exception as e:
            rollback_delete(self.sync, mutation)
            self._failed(mutation, e)
            return mutation

        self._confirmed(mutation, vehicle)
        return mutation
