"""Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status the API surface answers with, so routes
can simply raise and let the exception handler in ``api.main`` render
``{"ok": false, "error": <message>}``.
"""
from typing import Optional


class VehicleServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class ConfigError(VehicleServiceError):
    """Required environment/configuration missing. Never retried."""
    status_code = 500


class ValidationError(VehicleServiceError):
    """Bad input shape or range."""
    status_code = 400


class AuthError(VehicleServiceError):
    """Missing or expired session."""
    status_code = 401


class ForbiddenError(AuthError):
    """Valid session without the required role."""
    status_code = 403


class NotFoundError(VehicleServiceError):
    status_code = 404


class UpstreamError(VehicleServiceError):
    """Non-OK HTTP, ``ok: false`` or unparsable JSON from the spreadsheet backend."""
    status_code = 502


class UpstreamTimeoutError(UpstreamError):
    """An upstream call exceeded its time budget."""
    status_code = 502
