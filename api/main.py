"""FastAPI service for the vehicle inventory.

Run with: uvicorn api.main:app --reload --port 8000

Endpoints:
- /api/vehicles - Vehicle list, details and writes (proxied to Apps Script)
- /api/market-price/update - Market price write-back (Admin)
- /api/cron/sync-vehicles - Scheduled cache refresh
- /api/health - Health check
"""
import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from api.routes import cron, health, market_price, vehicles
from api.routes.vehicles import NO_STORE_HEADERS
from core.config import get_config
from core.errors import VehicleServiceError
from core.logging_config import clear_context, current_request_id, generate_request_id, set_context, setup_logging

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.

    - Uses the client's X-Request-ID or generates a short one
    - Sets it in the logging context for the request lifecycle
    - Adds X-Request-ID header to responses
    """
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or generate_request_id()

        set_context(request_id=request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id() -> str:
    """Get the current request ID from context."""
    return current_request_id.get()


def error_response(message: str, status_code: int) -> JSONResponse:
    """``{"ok": false, "error": ...}`` with no-store headers."""
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": message},
        headers=NO_STORE_HEADERS,
    )


config = get_config()
setup_logging(level=config.log_level, format_type=config.log_format)

app = FastAPI(
    title="Vehicle Inventory",
    description="Vehicle inventory API backed by a Google Apps Script spreadsheet",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Request ID middleware - add first so it runs for all requests
app.add_middleware(RequestIDMiddleware)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict to specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],  # Allow frontend to read request ID
)


@app.exception_handler(VehicleServiceError)
async def vehicle_service_error_handler(request: Request, exc: VehicleServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return error_response(exc.message, exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(str(exc.detail), exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return error_response(message, 400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(str(exc) or "Internal server error", 500)


app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(vehicles.router)
app.include_router(market_price.router)
app.include_router(cron.router)
