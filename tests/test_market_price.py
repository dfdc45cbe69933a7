"""Tests for POST /api/market-price/update."""

import pytest

URL = "/api/market-price/update"

MARKET_DATA = {
    "priceLow": 9000,
    "priceMedian": 10000,
    "priceHigh": 12000,
    "source": "manual",
    "samples": 12,
    "confidence": "High",
}


class TestValidation:
    """Tests for request validation."""

    def test_requires_admin(self, client, staff_headers):
        response = client.post(URL, json={"vehicleId": "1", "marketData": MARKET_DATA}, headers=staff_headers)
        assert response.status_code == 403

    def test_requires_session(self, client):
        response = client.post(URL, json={"vehicleId": "1", "marketData": MARKET_DATA})
        assert response.status_code == 401

    def test_missing_vehicle_id(self, client, admin_headers):
        response = client.post(URL, json={"marketData": MARKET_DATA}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Missing vehicleId"}

    def test_missing_market_data(self, client, admin_headers):
        response = client.post(URL, json={"vehicleId": "1"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Missing or invalid marketData"

    @pytest.mark.parametrize("overrides,message", [
        ({"confidence": "Great"}, "Invalid confidence level"),
        ({"priceLow": 11000}, "priceLow cannot be greater than priceMedian"),
        ({"priceHigh": 9500}, "priceHigh cannot be less than priceMedian"),
        ({"priceLow": 5}, "priceLow out of reasonable range"),
        ({"priceLow": None, "priceMedian": None, "priceHigh": 2_000_000}, "priceHigh out of reasonable range"),
    ])
    def test_range_checks(self, client, admin_headers, fake_upstream, overrides, message):
        data = {**MARKET_DATA, **overrides}

        response = client.post(URL, json={"vehicleId": "1", "marketData": data}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"] == message
        assert fake_upstream.requests == []


class TestUpdate:
    """Tests for the upstream write."""

    def test_success(self, client, admin_headers, fake_upstream, make_row, vehicle_cache):
        fake_upstream.rows = [make_row(1)]
        vehicle_cache.set([])

        response = client.post(URL, json={"vehicleId": 1, "marketData": MARKET_DATA}, headers=admin_headers)

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["vehicleId"] == "1"
        assert data["updated"] is True
        assert data["updatedBy"] == "test-admin"
        assert data["updatedAt"].endswith("Z")

        sent = fake_upstream.market_updates[0]
        assert sent["token"] == "test-upload-token"
        assert sent["data"]["MARKET_PRICE_MEDIAN"] == 10000
        assert sent["data"]["MARKET_PRICE_UPDATED_BY"] == "test-admin"
        assert fake_upstream.requests[0].url.params["action"] == "updateMarketPrice"
        assert vehicle_cache.get() is None

    def test_blank_fields_sent_as_empty_strings(self, client, admin_headers, fake_upstream, make_row):
        fake_upstream.rows = [make_row(1)]

        client.post(URL, json={"vehicleId": "1", "marketData": {"priceMedian": 10000}}, headers=admin_headers)

        sent = fake_upstream.market_updates[0]["data"]
        assert sent["MARKET_PRICE_LOW"] == ""
        assert sent["MARKET_PRICE_SOURCE"] == ""

    def test_upstream_rejection(self, client, admin_headers, fake_upstream):
        response = client.post(URL, json={"vehicleId": "77", "marketData": MARKET_DATA}, headers=admin_headers)

        assert response.status_code == 502
        assert response.json()["error"] == "Vehicle not found"

    @pytest.mark.parametrize("status,message", [(401, "Unauthorized"), (403, "Forbidden")])
    def test_upstream_auth_statuses_pass_through(self, client, admin_headers, fake_upstream, status, message):
        fake_upstream.fail_with_status = status

        response = client.post(URL, json={"vehicleId": "1", "marketData": MARKET_DATA}, headers=admin_headers)

        assert response.status_code == status
        assert response.json() == {"ok": False, "error": message}

    def test_upstream_server_error_keeps_status(self, client, admin_headers, fake_upstream):
        fake_upstream.fail_with_status = 500

        response = client.post(URL, json={"vehicleId": "1", "marketData": MARKET_DATA}, headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to update market price"
