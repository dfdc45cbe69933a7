"""
Apps Script Client - HTTP access to the spreadsheet backend

The upstream is a single Google Apps Script web app routed by ``?action=``.
Reads are GETs; writes are JSON POSTs carrying the server-held upload token.
Every call runs under an explicit ``httpx.Timeout``; timeouts surface as
``UpstreamTimeoutError`` so callers can tell "too slow" from "unreachable".

Responses follow the ``{ok, data?, meta?, error?}`` envelope.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from core.config import UpstreamConfig
from core.errors import AuthError, ConfigError, ForbiddenError, UpstreamError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MESSAGE = "Request to Apps Script timed out. Try again or use a smaller image."
READ_TIMEOUT_MESSAGE = "Reading vehicles from Apps Script timed out. Try again."
INVALID_JSON_MESSAGE = "Invalid JSON from Apps Script"
MISSING_URL_MESSAGE = "Missing APPS_SCRIPT_URL (or NEXT_PUBLIC_API_URL) environment variable"


def apps_script_url(base_url: str, action: str, **params: Any) -> str:
    """Return ``base_url`` with ``action`` (and extra params) set in the query string."""
    parsed = urlparse(base_url)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query["action"] = action
    for key, value in params.items():
        if value is not None:
            query[key] = str(value)
    return urlunparse(parsed._replace(query=urlencode(query)))


@dataclass
class PageMeta:
    """Pagination metadata as reported by getVehicles. Invalid numbers are None."""
    total: Optional[int] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass
class VehiclePage:
    rows: List[Dict[str, Any]]
    meta: Optional[PageMeta]


@dataclass
class UploadResponse:
    status_code: int
    payload: Dict[str, Any]

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


def _to_int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    try:
        return int(float(trimmed))
    except ValueError:
        return None


def _error_message(payload: Dict[str, Any], fallback: str) -> str:
    error = payload.get("error")
    if isinstance(error, str) and error.strip():
        return error.strip()
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return fallback


class AppsScriptClient:
    """Async client for the Apps Script spreadsheet API."""

    def __init__(
        self,
        config: UpstreamConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    @property
    def base_url(self) -> str:
        if not self.config.base_url:
            raise ConfigError(MISSING_URL_MESSAGE)
        return self.config.base_url

    def ensure_configured(self) -> None:
        """Raise ConfigError when no upstream URL is configured."""
        if not self.config.base_url:
            raise ConfigError(MISSING_URL_MESSAGE)

    @property
    def upload_token(self) -> str:
        return self.config.upload_token

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    async def _send(
        self,
        method: str,
        url: str,
        timeout: float,
        json_body: Optional[Dict[str, Any]] = None,
        timeout_message: str = DEFAULT_TIMEOUT_MESSAGE,
    ) -> httpx.Response:
        try:
            async with self._client(timeout) as client:
                if method == "GET":
                    return await client.get(url, headers={"Cache-Control": "no-store"})
                return await client.post(url, json=json_body)
        except httpx.TimeoutException as e:
            logger.warning(f"Apps Script {method} timed out after {timeout}s: {e}")
            raise UpstreamTimeoutError(timeout_message)
        except httpx.HTTPError as e:
            logger.warning(f"Apps Script {method} transport failure: {e}")
            raise UpstreamError(f"Apps Script request failed: {e}")

    @staticmethod
    def _parse_json(response: httpx.Response) -> Dict[str, Any]:
        """Parse the envelope; unparsable or non-object bodies become ``{}``."""
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    @staticmethod
    def _parse_json_strict(response: httpx.Response) -> Dict[str, Any]:
        """Parse a read envelope; a non-JSON or non-object body raises ``UpstreamError``."""
        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Apps Script returned non-JSON body: {response.text[:200]!r}")
            raise UpstreamError(INVALID_JSON_MESSAGE)
        if not isinstance(payload, dict):
            raise UpstreamError(INVALID_JSON_MESSAGE)
        return payload

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_vehicles_page(self, offset: int, limit: int) -> VehiclePage:
        """Fetch one ``getVehicles`` page. ``ok: false`` raises with the upstream message."""
        url = apps_script_url(self.base_url, "getVehicles", limit=limit, offset=offset)
        response = await self._send("GET", url, self.config.read_timeout, timeout_message=READ_TIMEOUT_MESSAGE)

        if not response.is_success:
            raise UpstreamError(f"Apps Script error: {response.status_code}")

        payload = self._parse_json_strict(response)
        if payload.get("ok") is False:
            raise UpstreamError(_error_message(payload, "Apps Script ok=false"))

        data = payload.get("data")
        rows = [row for row in data if isinstance(row, dict)] if isinstance(data, list) else []

        meta_raw = payload.get("meta")
        meta = None
        if isinstance(meta_raw, dict):
            meta = PageMeta(
                total=_to_int_or_none(meta_raw.get("total")),
                limit=_to_int_or_none(meta_raw.get("limit")),
                offset=_to_int_or_none(meta_raw.get("offset")),
            )

        return VehiclePage(rows=rows, meta=meta)

    async def get_by_id(self, vehicle_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Call ``getById``. Returns the raw envelope so callers can inspect
        ``ok``/``error`` themselves; non-OK HTTP or a non-JSON body raises
        ``UpstreamError``.
        """
        url = apps_script_url(self.base_url, "getById", id=vehicle_id)
        response = await self._send(
            "GET", url, timeout or self.config.read_timeout, timeout_message=READ_TIMEOUT_MESSAGE
        )
        if not response.is_success:
            raise UpstreamError(f"Apps Script error: {response.status_code}")
        return self._parse_json_strict(response)

    async def ping(self) -> Dict[str, Any]:
        """Cheap ``getVehicles&limit=1`` round trip for health checks."""
        url = apps_script_url(self.base_url, "getVehicles", limit=1)
        response = await self._send(
            "GET", url, self.config.ping_timeout, timeout_message=READ_TIMEOUT_MESSAGE
        )
        if not response.is_success:
            raise UpstreamError(f"Apps Script error: {response.status_code}")
        return self._parse_json_strict(response)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def post_action(
        self,
        action: str,
        body: Dict[str, Any],
        timeout: Optional[float] = None,
        timeout_message: str = DEFAULT_TIMEOUT_MESSAGE,
    ) -> Dict[str, Any]:
        """POST ``{"action": action, **body}`` and return the parsed envelope.

        Non-OK HTTP raises ``UpstreamError`` with the status.
        """
        response = await self._send(
            "POST",
            self.base_url,
            timeout or self.config.write_timeout,
            json_body={"action": action, **body},
            timeout_message=timeout_message,
        )

        if not response.is_success:
            raise UpstreamError(f"Apps Script error: {response.status_code}")
        return self._parse_json(response)

    async def add(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post_action("add", {"data": data})

    async def update(self, vehicle_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post_action("update", {"id": vehicle_id, "data": data})

    async def delete(self, vehicle_id: str, image_file_id: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "VehicleId": vehicle_id,
            "id": vehicle_id,
            "vehicleId": vehicle_id,
        }
        if image_file_id:
            body["token"] = self.upload_token
            body["imageFileId"] = image_file_id
        return await self.post_action(
            "delete", body, timeout_message="Request to Apps Script timed out."
        )

    async def upload_image(
        self,
        folder_id: str,
        category: str,
        mime_type: str,
        file_name: str,
        base64_data: str,
        replace_file_id: Optional[str] = None,
    ) -> UploadResponse:
        """POST ``uploadImage``. Returns status and envelope without judging them."""
        body: Dict[str, Any] = {
            "action": "uploadImage",
            "folderId": folder_id,
            "category": category,
            "token": self.upload_token,
            "mimeType": mime_type,
            "fileName": file_name,
            "data": base64_data,
        }
        if replace_file_id:
            body["replaceFileId"] = replace_file_id

        response = await self._send("POST", self.base_url, self.config.upload_timeout, json_body=body)
        return UploadResponse(status_code=response.status_code, payload=self._parse_json(response))

    async def update_market_price(self, vehicle_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST ``?action=updateMarketPrice``. Upstream 401/403 surface as auth
        errors; other failures keep the upstream status.
        """
        url = apps_script_url(self.base_url, "updateMarketPrice")
        body = {"id": vehicle_id, "data": data, "token": self.upload_token}
        response = await self._send("POST", url, self.config.write_timeout, json_body=body)

        if response.status_code == 401:
            raise AuthError("Unauthorized")
        if response.status_code == 403:
            raise ForbiddenError("Forbidden")

        payload = self._parse_json(response)
        if not response.is_success or not payload.get("ok"):
            raise UpstreamError(
                _error_message(payload, "Failed to update market price"),
                status_code=response.status_code if not response.is_success else None,
            )
        return payload
