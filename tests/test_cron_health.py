"""Tests for the scheduled sync route and the health endpoints."""

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


class TestCronSync:
    """Tests for /api/cron/sync-vehicles."""

    def test_requires_cron_secret(self, client, fake_upstream):
        response = client.get("/api/cron/sync-vehicles")

        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "Unauthorized"}
        assert fake_upstream.requests == []

    def test_wrong_secret(self, client):
        response = client.post("/api/cron/sync-vehicles", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_non_ascii_secret_is_unauthorized(self, client, fake_upstream):
        headers = {"Authorization": "Bearer caf\u00e9".encode("utf-8")}

        response = client.get("/api/cron/sync-vehicles", headers=headers)

        assert response.status_code == 401
        assert fake_upstream.requests == []

    def test_sync_fills_cache_and_reports_metrics(self, client, fake_upstream, make_row, vehicle_cache):
        fake_upstream.rows = [
            make_row(1, Condition="New"),
            make_row(2, Brand=""),
            make_row(3, Year=1800),
            make_row(4, Category="Motorcycle", MARKET_PRICE_CONFIDENCE="high"),
        ]

        response = client.get("/api/cron/sync-vehicles", headers=CRON_HEADERS)

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["ok"] is True
        assert body["message"] == "Vehicle sync completed"
        assert body["timestamp"].endswith("Z")

        metrics = body["metrics"]
        assert metrics["vehicleCount"] == 2
        assert metrics["droppedCount"] == 2
        assert metrics["categories"] == {"Cars": 1, "Motorcycles": 1, "TukTuks": 0}
        assert metrics["conditions"] == {"New": 1, "Used": 1}

        cached = vehicle_cache.get()
        assert [v.vehicle_id for v in cached] == ["1", "4"]
        assert cached[1].market_price_confidence == "High"

    def test_post_also_accepted(self, client, fake_upstream, make_row):
        fake_upstream.rows = [make_row(1)]
        response = client.post("/api/cron/sync-vehicles", headers=CRON_HEADERS)
        assert response.status_code == 200

    def test_failure_is_reported_and_recorded(self, client, fake_upstream):
        fake_upstream.fail_with_status = 500

        response = client.get("/api/cron/sync-vehicles", headers=CRON_HEADERS)

        assert response.status_code == 500
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == "Apps Script error: 500"

        health = client.get("/api/health").json()
        assert health["googleSheets"]["error"] == "Apps Script error: 500"


class TestHealth:
    """Tests for /api/health."""

    def test_degraded_on_cold_cache(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["cache"] == {"status": "miss", "vehicleCount": 0, "lastUpdated": None}
        assert body["googleSheets"]["status"] == "connected"
        assert body["environment"] == "test"
        assert "no-cache" in response.headers["Cache-Control"]

    def test_healthy_after_sync(self, client, fake_upstream, make_row):
        fake_upstream.rows = [make_row(1), make_row(2)]
        client.get("/api/cron/sync-vehicles", headers=CRON_HEADERS)

        body = client.get("/api/health").json()

        assert body["status"] == "healthy"
        assert body["cache"]["status"] == "hit"
        assert body["cache"]["vehicleCount"] == 2
        assert body["googleSheets"]["lastSync"] is not None
        assert body["googleSheets"]["error"] is None

    def test_unhealthy_when_cold_and_disconnected(self, client, fake_upstream):
        fake_upstream.fail_with_status = 503

        response = client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["googleSheets"]["status"] == "disconnected"

    def test_degraded_when_warm_and_disconnected(self, client, fake_upstream, vehicle_cache):
        vehicle_cache.set([])
        fake_upstream.fail_with_status = 503

        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_ready_and_live_need_no_session(self, client):
        assert client.get("/api/ready").json() == {"ready": True}
        assert client.get("/api/live").json() == {"alive": True}
