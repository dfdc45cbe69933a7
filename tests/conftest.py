"""
Pytest configuration and shared fixtures.
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Set environment variables BEFORE any imports that might use them
os.environ["APPS_SCRIPT_URL"] = "https://script.example.test/macros/s/test/exec"
os.environ["APPS_SCRIPT_UPLOAD_TOKEN"] = "test-upload-token"
os.environ["SESSION_SECRET"] = "test-session-secret-for-testing-only"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["VEHICLES_CACHE_TTL_MS"] = "600000"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"

import httpx
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

UPLOADED_FILE_ID = "uploadedFile_0123456789"


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeAppsScript:
    """
    In-memory Apps Script web app served through ``httpx.MockTransport``.

    Rows are stored as written (including legacy duplicate headers) and
    paged back the way the real deployment does. ``overrides`` maps an action
    to a handler that answers (or raises) in place of the built-in one.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows: List[Dict[str, Any]] = [dict(r) for r in (rows or [])]
        self.requests: List[httpx.Request] = []
        self.include_meta = True
        self.supports_get_by_id = True
        self.fail_with_status: Optional[int] = None
        self.overrides: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.uploads: List[Dict[str, Any]] = []
        self.deletes: List[Dict[str, Any]] = []
        self.market_updates: List[Dict[str, Any]] = []
        self._next_id = 1000

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def actions(self) -> List[str]:
        names = []
        for request in self.requests:
            action = request.url.params.get("action")
            if not action and request.content:
                action = json.loads(request.content).get("action")
            names.append(action)
        return names

    def find(self, vehicle_id: str) -> Optional[Dict[str, Any]]:
        for row in self.rows:
            if str(row.get("VehicleId")) == str(vehicle_id):
                return row
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with_status is not None:
            return httpx.Response(self.fail_with_status, text="upstream failure")

        body = json.loads(request.content) if request.method != "GET" and request.content else {}
        action = body.get("action") or request.url.params.get("action")
        if action in self.overrides:
            return self.overrides[action](request)

        if request.method == "GET":
            return self._handle_get(request)
        return self._handle_post(action, body)

    def _handle_get(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        action = params.get("action")

        if action == "getVehicles":
            limit = int(params.get("limit", "500"))
            offset = int(params.get("offset", "0"))
            payload: Dict[str, Any] = {"ok": True, "data": self.rows[offset:offset + limit]}
            if self.include_meta:
                payload["meta"] = {"total": len(self.rows), "limit": limit, "offset": offset}
            return httpx.Response(200, json=payload)

        if action == "getById":
            if not self.supports_get_by_id:
                return httpx.Response(200, json={"ok": False, "error": "Unknown action: getById"})
            row = self.find(params.get("id"))
            if row is None:
                return httpx.Response(200, json={"ok": False, "error": "Vehicle not found"})
            return httpx.Response(200, json={"ok": True, "data": row})

        return httpx.Response(200, json={"ok": False, "error": f"Unknown action: {action}"})

    def _handle_post(self, action: str, body: Dict[str, Any]) -> httpx.Response:
        if action == "add":
            row = dict(body["data"])
            if not row.get("VehicleId"):
                self._next_id += 1
                row["VehicleId"] = str(self._next_id)
            self.rows.append(row)
            return httpx.Response(200, json={"ok": True, "data": {"VehicleId": row["VehicleId"]}})

        if action == "update":
            row = self.find(body["id"])
            if row is None:
                return httpx.Response(200, json={"ok": False, "error": "Vehicle not found"})
            row.update(body["data"])
            return httpx.Response(200, json={"ok": True, "data": row})

        if action == "delete":
            self.deletes.append(body)
            row = self.find(body["VehicleId"])
            if row is None:
                return httpx.Response(200, json={"ok": False, "error": "Vehicle not found"})
            self.rows.remove(row)
            return httpx.Response(200, json={"ok": True, "data": {"deleted": body["VehicleId"]}})

        if action == "uploadImage":
            self.uploads.append(body)
            return httpx.Response(200, json={"ok": True, "fileId": UPLOADED_FILE_ID})

        if action == "updateMarketPrice":
            self.market_updates.append(body)
            row = self.find(body["id"])
            if row is None:
                return httpx.Response(200, json={"ok": False, "error": "Vehicle not found"})
            row.update(body["data"])
            return httpx.Response(200, json={"ok": True})

        return httpx.Response(200, json={"ok": False, "error": f"Unknown action: {action}"})


def build_row(vehicle_id: Any, **overrides: Any) -> Dict[str, Any]:
    row = {
        "VehicleId": str(vehicle_id),
        "Category": "Car",
        "Brand": "Toyota",
        "Model": "Camry",
        "Year": 2020,
        "Plate": f"2A-{vehicle_id}",
        "Price New": 20000,
        "Condition": "Used",
        "Image": "",
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_row():
    """Factory for raw sheet rows."""
    return build_row


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_upstream():
    return FakeAppsScript()


@pytest.fixture
def apps_script_client(fake_upstream):
    from core.config import get_config
    from services.apps_script import AppsScriptClient

    return AppsScriptClient(get_config().upstream, transport=fake_upstream.transport)


@pytest.fixture
def vehicle_cache(clock):
    from services.vehicle_cache import InMemoryVehicleCache

    return InMemoryVehicleCache(ttl_ms=600000, clock=clock)


@pytest.fixture
def vehicle_service(apps_script_client, vehicle_cache):
    from core.config import DriveConfig
    from services.vehicle_service import VehicleService

    return VehicleService(client=apps_script_client, cache=vehicle_cache, drive_config=DriveConfig())


@pytest.fixture(scope="session")
def app():
    """Create FastAPI test application."""
    from api.main import app

    return app


@pytest.fixture
def client(app, vehicle_service):
    """Test client wired to the fake upstream."""
    from fastapi.testclient import TestClient

    from api.routes.health import SyncStatus
    from services.vehicle_service import get_vehicle_service

    app.dependency_overrides[get_vehicle_service] = lambda: vehicle_service
    SyncStatus.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def admin_headers():
    """Bearer session headers for an Admin user."""
    from api.auth import UserRole, create_session_token

    token = create_session_token("test-admin", UserRole.ADMIN)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="session")
def staff_headers():
    """Bearer session headers for a Staff user."""
    from api.auth import UserRole, create_session_token

    token = create_session_token("test-staff", UserRole.STAFF)
    return {"Authorization": f"Bearer {token}"}
