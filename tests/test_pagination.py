"""Tests for the getVehicles pagination loop."""

import asyncio
import math

import httpx
import pytest

from core.config import UpstreamConfig
from core.errors import UpstreamError, UpstreamTimeoutError
from services.apps_script import INVALID_JSON_MESSAGE, READ_TIMEOUT_MESSAGE, AppsScriptClient
from services.pagination import PAGE_LIMIT, fetch_all_pages, fetch_all_rows

BASE_URL = "https://script.example.test/exec"


def make_client(handler) -> AppsScriptClient:
    return AppsScriptClient(UpstreamConfig(base_url=BASE_URL), transport=httpx.MockTransport(handler))


def rows_for(count, start=1):
    return [{"VehicleId": str(i), "Brand": "Toyota"} for i in range(start, start + count)]


class PagedSheet:
    """Serves ``rows`` in pages, optionally misreporting meta."""

    def __init__(self, rows, meta=True, stuck_offset=False):
        self.rows = rows
        self.meta = meta
        self.stuck_offset = stuck_offset
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        limit = int(request.url.params["limit"])
        offset = int(request.url.params["offset"])
        payload = {"ok": True, "data": self.rows[offset:offset + limit]}
        if self.meta:
            payload["meta"] = {
                "total": len(self.rows),
                "limit": limit,
                "offset": 0 if self.stuck_offset else offset,
            }
        return httpx.Response(200, json=payload)


class TestTermination:
    """Tests for the loop's stop conditions."""

    @pytest.mark.parametrize("total", [1, 499, 500, 501, 1000, 1234, 2500])
    def test_exact_page_count(self, total):
        sheet = PagedSheet(rows_for(total))
        result = asyncio.run(fetch_all_pages(make_client(sheet)))

        assert len(result.rows) == total
        assert sheet.calls == math.ceil(total / PAGE_LIMIT)

    def test_empty_sheet(self):
        sheet = PagedSheet([])
        result = asyncio.run(fetch_all_pages(make_client(sheet)))

        assert result.rows == []
        assert sheet.calls == 1
        assert result.stats.stop_reason == "empty_page"

    def test_stuck_offset_stops_after_one_extra_call(self):
        sheet = PagedSheet(rows_for(2000), stuck_offset=True)
        result = asyncio.run(fetch_all_pages(make_client(sheet)))

        assert sheet.calls == 2
        assert result.stats.stop_reason == "offset_stuck"

    def test_no_meta_single_page(self):
        sheet = PagedSheet(rows_for(700), meta=False)
        result = asyncio.run(fetch_all_pages(make_client(sheet)))

        assert sheet.calls == 1
        assert len(result.rows) == 500
        assert result.stats.stop_reason == "no_meta"

    def test_page_cap(self):
        def endless(request):
            offset = int(request.url.params["offset"])
            return httpx.Response(200, json={
                "ok": True,
                "data": rows_for(10, start=offset + 1),
                "meta": {"total": "lots", "limit": 10, "offset": offset},
            })

        result = asyncio.run(fetch_all_pages(make_client(endless), limit=10, max_pages=5))

        assert result.stats.pages == 5
        assert result.stats.stop_reason == "page_cap"
        assert len(result.rows) == 50

    def test_blank_tail(self):
        def handler(request):
            return httpx.Response(200, json={
                "ok": True,
                "data": [{"VehicleId": "", "Brand": ""}],
                "meta": {"total": 5000, "limit": 500, "offset": 0},
            })

        result = asyncio.run(fetch_all_pages(make_client(handler)))
        assert result.rows == []
        assert result.stats.stop_reason == "blank_tail"

    def test_invalid_meta_numbers_fall_back_to_requested(self):
        seen_offsets = []

        def handler(request):
            offset = int(request.url.params["offset"])
            seen_offsets.append(offset)
            data = rows_for(500, start=offset + 1) if offset < 1000 else []
            return httpx.Response(200, json={
                "ok": True,
                "data": data,
                "meta": {"total": None, "limit": "abc", "offset": -3},
            })

        result = asyncio.run(fetch_all_pages(make_client(handler)))

        assert seen_offsets == [0, 500, 1000]
        assert len(result.rows) == 1000


class TestRowFiltering:
    """Tests for rows dropped during the fetch."""

    def test_rows_without_identity_are_dropped(self):
        rows = rows_for(3) + [{"VehicleId": "", "Brand": "Ghost"}, {"#": "", "Brand": ""}]

        def handler(request):
            return httpx.Response(200, json={"ok": True, "data": rows})

        result = asyncio.run(fetch_all_rows(make_client(handler)))
        assert [r["VehicleId"] for r in result] == ["1", "2", "3"]


class TestFailures:
    """Tests for upstream failures during the fetch."""

    def test_ok_false_raises_upstream_message(self):
        def handler(request):
            return httpx.Response(200, json={"ok": False, "error": "Sheet locked"})

        with pytest.raises(UpstreamError, match="Sheet locked"):
            asyncio.run(fetch_all_rows(make_client(handler)))

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(UpstreamError, match="Apps Script error: 503"):
            asyncio.run(fetch_all_rows(make_client(handler)))

    def test_timeout_is_distinct(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            asyncio.run(fetch_all_rows(make_client(handler)))
        assert exc_info.value.message == READ_TIMEOUT_MESSAGE
        assert "smaller image" not in exc_info.value.message

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamError) as exc_info:
            asyncio.run(fetch_all_rows(make_client(handler)))
        assert not isinstance(exc_info.value, UpstreamTimeoutError)

    def test_html_page_is_not_an_empty_sheet(self):
        def handler(request):
            return httpx.Response(200, text="<html>Sign in to Google</html>", headers={"content-type": "text/html"})

        with pytest.raises(UpstreamError, match=INVALID_JSON_MESSAGE):
            asyncio.run(fetch_all_rows(make_client(handler)))

    def test_non_object_json_is_invalid(self):
        def handler(request):
            return httpx.Response(200, json=[{"VehicleId": "1"}])

        with pytest.raises(UpstreamError, match=INVALID_JSON_MESSAGE):
            asyncio.run(fetch_all_rows(make_client(handler)))

    def test_get_by_id_html_raises(self):
        def handler(request):
            return httpx.Response(200, text="<html>quota exceeded</html>")

        with pytest.raises(UpstreamError, match=INVALID_JSON_MESSAGE):
            asyncio.run(make_client(handler).get_by_id("7"))
