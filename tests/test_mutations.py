"""Tests for optimistic update/delete with rollback."""

import asyncio
import copy

import httpx
import pytest
from tenacity import wait_none

from client.api_client import ApiError, NetworkError, VehicleApiClient
from client.broadcast import VehicleListChannel
from client.mutations import (
    InvalidTransitionError,
    Mutation,
    MutationKind,
    MutationState,
    OptimisticMutations,
    apply_delete,
    confirm,
    rollback_delete,
    rollback_update,
)
from client.sync import VehicleSync
from models.vehicle import Vehicle
from services.vehicle_service import compute_meta


class StubApi:
    """Records calls; raises ``error`` when set."""

    def __init__(self, error=None):
        self.error = error
        self.updates = []
        self.deletes = []

    async def update_vehicle(self, vehicle_id, data, image_file=None):
        self.updates.append((vehicle_id, data, image_file))
        if self.error:
            raise self.error
        return data

    async def delete_vehicle(self, vehicle_id, image_file_id=None, image_url=None):
        self.deletes.append((vehicle_id, image_file_id, image_url))
        if self.error:
            raise self.error
        return None


def fleet():
    return [
        Vehicle(vehicle_id="1", category="Cars", brand="Toyota", model="Camry", price_new=20000),
        Vehicle(
            vehicle_id="2",
            category="Cars",
            brand="Lexus",
            model="RX",
            image="https://drive.google.com/thumbnail?id=lexusImage_0123&sz=w1000-h1000",
            market_price_median=30000,
        ),
        Vehicle(vehicle_id="3", category="Tuk Tuk", brand="Bajaj", model="RE"),
    ]


def make_sync(api):
    sync = VehicleSync(api, channel=VehicleListChannel())
    vehicles = fleet()
    sync.set_local_state(vehicles, compute_meta(vehicles))
    return sync


class Recorder:
    def __init__(self):
        self.errors = []
        self.successes = []

    def on_error(self, message, vehicle):
        self.errors.append((message, vehicle))

    def on_success(self, vehicle):
        self.successes.append(vehicle)


def make_mutations(api):
    sync = make_sync(api)
    recorder = Recorder()
    published = []
    sync.channel.subscribe(published.append)
    mutations = OptimisticMutations(sync, on_error=recorder.on_error, on_success=recorder.on_success)
    return mutations, sync, recorder, published


class TestUpdate:
    """Tests for optimistic updates."""

    def test_success_confirms_and_publishes(self):
        api = StubApi()
        mutations, sync, recorder, published = make_mutations(api)
        original = sync.vehicles[1]

        mutation = asyncio.run(mutations.update_vehicle("2", {"Model": "NX", "PriceNew": 40000}, original))

        assert mutation.state == MutationState.CONFIRMED
        assert sync.vehicles[1].model == "NX"
        assert sync.vehicles[1].price_new == 40000
        assert published[-1][1].model == "NX"
        assert recorder.successes[0].model == "NX"

        vehicle_id, sent, _ = api.updates[0]
        assert vehicle_id == "2"
        assert sent["Model"] == "NX"
        assert sent["Brand"] == "Lexus"
        assert "MarketPriceMedian" not in sent

    def test_failure_restores_exact_list(self):
        api = StubApi(error=ApiError("Invalid year", 400))
        mutations, sync, recorder, published = make_mutations(api)
        before = copy.deepcopy(sync.vehicles)
        meta_before = copy.deepcopy(sync.meta)

        mutation = asyncio.run(mutations.update_vehicle("1", {"Year": 1800}, sync.vehicles[0]))

        assert mutation.state == MutationState.ROLLED_BACK
        assert mutation.error == "Invalid year"
        assert sync.vehicles == before
        assert sync.meta == meta_before
        assert recorder.errors == [("Invalid year", before[0])]
        assert published == []

    def test_image_file_forwarded(self):
        api = StubApi()
        mutations, sync, _, _ = make_mutations(api)

        asyncio.run(mutations.update_vehicle("3", {"Color": "Blue"}, sync.vehicles[2], image_file=b"webp"))

        assert api.updates[0][2] == b"webp"

    def test_server_error_sent_once_with_its_message(self):
        upstream_error = "Request to Apps Script timed out. Try again or use a smaller image."
        calls = []

        def handler(request):
            calls.append(request.method)
            return httpx.Response(502, json={"ok": False, "error": upstream_error})

        api = VehicleApiClient(
            "http://api.test",
            token="session-token",
            transport=httpx.MockTransport(handler),
            retry_wait=wait_none(),
        )
        mutations, sync, recorder, _ = make_mutations(api)
        before = copy.deepcopy(sync.vehicles)

        mutation = asyncio.run(mutations.update_vehicle("2", {"Model": "NX"}, sync.vehicles[1]))

        assert calls == ["PUT"]
        assert mutation.state == MutationState.ROLLED_BACK
        assert recorder.errors[0][0] == upstream_error
        assert sync.vehicles == before


class TestDelete:
    """Tests for optimistic deletes."""

    def test_success_removes_and_decrements_total(self):
        api = StubApi()
        mutations, sync, recorder, published = make_mutations(api)
        target = sync.vehicles[1]

        mutation = asyncio.run(mutations.delete_vehicle(target))

        assert mutation.state == MutationState.CONFIRMED
        assert [v.vehicle_id for v in sync.vehicles] == ["1", "3"]
        assert sync.meta.total == 2
        assert api.deletes == [("2", None, target.image)]
        assert [v.vehicle_id for v in published[-1]] == ["1", "3"]
        assert recorder.successes == [target]

    def test_failure_reinserts_at_original_position(self):
        api = StubApi(error=NetworkError("offline"))
        mutations, sync, recorder, _ = make_mutations(api)
        before = copy.deepcopy(sync.vehicles)

        mutation = asyncio.run(mutations.delete_vehicle(sync.vehicles[1]))

        assert mutation.state == MutationState.ROLLED_BACK
        assert sync.vehicles == before
        assert sync.meta.total == 3
        assert recorder.errors[0][0] == "Network connection error. Please check your internet connection."

    def test_rollback_does_not_duplicate(self):
        sync = make_sync(StubApi())
        original = fleet()
        mutation = Mutation(kind=MutationKind.DELETE, vehicle_id="2", snapshot=original[1])

        apply_delete(sync, mutation)
        assert sync.meta.total == 2
        # A refetch brought the vehicle back before the failure arrived
        sync.set_local_state(fleet(), compute_meta(fleet()))
        rollback_delete(sync, mutation)

        assert [v.vehicle_id for v in sync.vehicles] == ["1", "2", "3"]
        assert sync.meta.total == 3

    def test_delete_of_unlisted_vehicle(self):
        api = StubApi(error=ApiError("Forbidden", 403))
        mutations, sync, _, _ = make_mutations(api)

        asyncio.run(mutations.delete_vehicle(Vehicle(vehicle_id="99")))

        assert [v.vehicle_id for v in sync.vehicles] == ["1", "2", "3"]
        assert sync.meta.total == 3

    def test_total_never_negative(self):
        sync = VehicleSync(StubApi(), channel=VehicleListChannel())
        only = [Vehicle(vehicle_id="1")]
        meta = compute_meta(only)
        meta.total = 0
        sync.set_local_state(only, meta)

        apply_delete(sync, Mutation(kind=MutationKind.DELETE, vehicle_id="1", snapshot=only[0]))

        assert sync.meta.total == 0


class TestTransitions:
    """Tests for the mutation state machine."""

    def test_confirm_requires_applied(self):
        mutation = Mutation(kind=MutationKind.UPDATE, vehicle_id="1", snapshot=Vehicle(vehicle_id="1"))
        with pytest.raises(InvalidTransitionError):
            confirm(mutation)

    def test_no_rollback_after_confirm(self):
        sync = make_sync(StubApi())
        mutation = Mutation(kind=MutationKind.UPDATE, vehicle_id="1", snapshot=sync.vehicles[0])
        mutation.state = MutationState.CONFIRMED

        with pytest.raises(InvalidTransitionError):
            rollback_update(sync, mutation)
