"""
Vehicle API Client - async wrapper around the /api/vehicles surface

Used by ``VehicleSync`` and ``OptimisticMutations``. Failures are raised as
one of three types so callers can phrase them for users:

- ConfigError:  the client has no base URL
- ApiError:     the server answered with an error status or unparsable body
- NetworkError: the server could not be reached or took too long

Reads (GET) are retried on network failures and 5xx answers (3 attempts,
exponential backoff). Writes are sent once; 4xx answers are never retried.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from models.vehicle import Vehicle, VehicleMeta

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
MAX_ATTEMPTS = 3

AUTH_REQUIRED_MESSAGE = "Your session has expired. Please log in again."
FORBIDDEN_MESSAGE = "You don't have permission to access this resource."
NOT_FOUND_MESSAGE = "The requested resource was not found."
SERVER_ERROR_MESSAGE = "The server encountered an error. Please try again later."
TIMEOUT_MESSAGE = "The request timed out. Please try again."
NETWORK_ERROR_MESSAGE = "Network connection error. Please check your internet connection."

RETRIED_METHODS = frozenset({"GET"})


class ApiError(Exception):
    """The API answered with an error status or an unusable body."""

    def __init__(self, message: str, status: int, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class NetworkError(Exception):
    """The API could not be reached, or did not answer in time."""


class RequestTimeoutError(NetworkError):
    """The API did not answer within the client timeout."""


class ConfigError(Exception):
    """The client is not configured to reach the API."""


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, NetworkError):
        return True
    return isinstance(error, ApiError) and error.status >= 500


def get_error_message(error: BaseException) -> str:
    """User-facing text for any failure raised by the client."""
    if isinstance(error, ConfigError):
        return f"Configuration Error:\n\n{error}"
    if isinstance(error, ApiError):
        return error.message
    if isinstance(error, RequestTimeoutError):
        return TIMEOUT_MESSAGE
    if isinstance(error, NetworkError):
        return NETWORK_ERROR_MESSAGE
    return str(error) or "An unexpected error occurred"


def _status_error(response: httpx.Response, payload: Dict[str, Any]) -> ApiError:
    status = response.status_code
    if status == 401:
        return ApiError(AUTH_REQUIRED_MESSAGE, status, "AUTH_REQUIRED")
    if status == 403:
        return ApiError(FORBIDDEN_MESSAGE, status, "FORBIDDEN")
    if status == 404:
        return ApiError(NOT_FOUND_MESSAGE, status, "NOT_FOUND")
    error = payload.get("error")
    if status >= 500:
        message = error if isinstance(error, str) and error else SERVER_ERROR_MESSAGE
        return ApiError(message, status, "SERVER_ERROR")
    message = error if isinstance(error, str) and error else f"Request failed: HTTP {status}"
    return ApiError(message, status, "HTTP_ERROR")


class VehicleApiClient:
    """Async client for the vehicle API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_wait=None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def _send_once(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self.timeout),
                headers=self._headers(),
            ) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            raise RequestTimeoutError(f"Request timed out after {self.timeout:g} seconds. URL: {url}")
        except httpx.HTTPError as e:
            raise NetworkError(f"Network connection failed. URL: {url} Error: {e}")

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            raise _status_error(response, payload if isinstance(payload, dict) else {})

        if not isinstance(payload, dict):
            preview = response.text[:200]
            raise ApiError(
                f"Invalid JSON response from server. Response preview: {preview}",
                response.status_code,
                "PARSE_ERROR",
            )

        if payload.get("ok") is False:
            error = payload.get("error")
            raise ApiError(
                error if isinstance(error, str) and error else "API request failed",
                response.status_code,
                "API_ERROR",
            )
        return payload

    async def request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """Send a request. Reads retry network failures and 5xx answers; writes go once."""
        if not self.base_url:
            raise ConfigError("API URL not configured")

        if method.upper() not in RETRIED_METHODS:
            return await self._send_once(method, path, **kwargs)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=self._retry_wait,
            retry=retry_if_exception(is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retry {attempt.retry_state.attempt_number}/{MAX_ATTEMPTS} for {method} {path}")
                return await self._send_once(method, path, **kwargs)

    # -------------------------------------------------------------------------
    # Vehicles
    # -------------------------------------------------------------------------

    async def get_vehicles(
        self,
        lite: bool = False,
        max_rows: Optional[int] = None,
    ) -> Tuple[List[Vehicle], Optional[VehicleMeta]]:
        params: Dict[str, str] = {}
        if lite:
            params["lite"] = "1"
        if max_rows:
            params["maxRows"] = str(max_rows)

        payload = await self.request("GET", "/api/vehicles", params=params)
        data = payload.get("data")
        if not isinstance(data, list):
            raise ApiError("Invalid response: expected array of vehicles", 500, "FORMAT_ERROR")

        vehicles = [Vehicle.from_dict(item) for item in data if isinstance(item, dict)]
        meta_raw = payload.get("meta")
        meta = VehicleMeta.from_dict(meta_raw) if isinstance(meta_raw, dict) else None
        return vehicles, meta

    async def get_vehicle(self, vehicle_id: str) -> Vehicle:
        payload = await self.request("GET", f"/api/vehicles/{vehicle_id}")
        return Vehicle.from_dict(payload.get("data") or {})

    async def add_vehicle(self, data: Dict[str, Any]) -> Any:
        payload = await self.request("POST", "/api/vehicles", json=data)
        return payload.get("data")

    async def update_vehicle(
        self,
        vehicle_id: str,
        data: Dict[str, Any],
        image_file: Optional[bytes] = None,
    ) -> Any:
        """PUT the record; ``image_file`` switches to multipart with an ``image`` part."""
        if image_file is None:
            payload = await self.request("PUT", f"/api/vehicles/{vehicle_id}", json=data)
        else:
            form = {key: "" if value is None else str(value) for key, value in data.items()}
            payload = await self.request(
                "PUT",
                f"/api/vehicles/{vehicle_id}",
                data=form,
                files={"image": (f"vehicle_{vehicle_id}.webp", image_file, "image/webp")},
            )
        return payload.get("data")

    async def delete_vehicle(
        self,
        vehicle_id: str,
        image_file_id: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Any:
        body = {"imageFileId": image_file_id, "imageUrl": image_url}
        payload = await self.request("DELETE", f"/api/vehicles/{vehicle_id}", json=body)
        return payload.get("data")

    async def clear_cache(self) -> None:
        await self.request("POST", "/api/vehicles/clear-cache")

    async def update_market_price(self, vehicle_id: str, market_data: Dict[str, Any]) -> Any:
        payload = await self.request(
            "POST",
            "/api/market-price/update",
            json={"vehicleId": vehicle_id, "marketData": market_data},
        )
        return payload.get("data")
