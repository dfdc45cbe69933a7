"""
Authentication Module

Signed session tokens with role-based access control.

Roles:
- Admin: full access, including vehicle writes and market price updates
- Staff: read-only access to the vehicle list and details

The token travels in the ``session`` cookie or as ``Authorization: Bearer``.
It is an HMAC-SHA256 signed payload ``{sub, role, iat, exp, v}``; tokens
older than SESSION_MAX_AGE_HOURS are rejected.

Usage:
    from api.auth import require_session, require_admin

    @router.get("/vehicles")
    async def list_vehicles(session: Session = Depends(require_session)):
        ...

    @router.post("/vehicles")
    async def create_vehicle(session: Session = Depends(require_admin)):
        ...
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from core.config import get_config
from core.errors import AuthError, ConfigError, ForbiddenError

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session"
SESSION_VERSION = 1

_dev_secret: Optional[str] = None


def get_session_secret() -> str:
    """Get the signing secret, generating a per-process one for development."""
    global _dev_secret

    config = get_config()
    if config.auth.session_secret:
        return config.auth.session_secret

    if config.environment == "production":
        raise ConfigError("SESSION_SECRET must be set in production environment")

    if _dev_secret is None:
        _dev_secret = secrets.token_hex(32)
        logger.warning("Generated an ephemeral session secret. Set SESSION_SECRET to keep sessions across restarts!")
    return _dev_secret


# =============================================================================
# MODELS
# =============================================================================


class UserRole(str, Enum):
    """User roles for RBAC."""

    ADMIN = "Admin"
    STAFF = "Staff"


class Session(BaseModel):
    """Authenticated session."""

    username: str
    role: UserRole
    issued_at: int
    expires_at: int

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class TokenPayload(BaseModel):
    """Signed token payload."""

    sub: str  # username
    role: str
    iat: int  # issued at timestamp
    exp: int  # expiration timestamp
    v: int = SESSION_VERSION


# =============================================================================
# TOKEN UTILITIES
# =============================================================================


def _base64url_encode(data: bytes) -> str:
    """Base64url encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _base64url_decode(data: str) -> bytes:
    """Base64url decode with padding restoration."""
    padding = 4 - len(data) % 4
    if padding != 4:
        data += "=" * padding
    return base64.urlsafe_b64decode(data)


def _sign(message: str) -> str:
    signature = hmac.new(get_session_secret().encode(), message.encode(), hashlib.sha256).digest()
    return _base64url_encode(signature)


def create_session_token(username: str, role: UserRole, now: Optional[datetime] = None) -> str:
    """Create a signed session token."""
    now = now or datetime.now(timezone.utc)
    exp = now + timedelta(hours=get_config().auth.session_max_age_hours)

    payload = {
        "sub": username,
        "role": UserRole(role).value,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "v": SESSION_VERSION,
    }
    payload_b64 = _base64url_encode(json.dumps(payload, separators=(",", ":")).encode())
    return f"{payload_b64}.{_sign(payload_b64)}"


def verify_session_token(token: str) -> Optional[Session]:
    """Verify and decode a session token. Returns None when invalid or expired."""
    parts = token.split(".")
    if len(parts) != 2:
        return None
    payload_b64, signature_b64 = parts

    if not hmac.compare_digest(_sign(payload_b64), signature_b64):
        logger.warning("Invalid session signature")
        return None

    try:
        payload = TokenPayload(**json.loads(_base64url_decode(payload_b64).decode()))
        role = UserRole(payload.role)
    except (ValueError, TypeError) as e:
        logger.warning(f"Malformed session payload: {e}")
        return None

    if payload.v != SESSION_VERSION:
        logger.warning("Session version mismatch")
        return None

    if payload.exp < datetime.now(timezone.utc).timestamp():
        logger.info("Session expired")
        return None

    return Session(username=payload.sub, role=role, issued_at=payload.iat, expires_at=payload.exp)


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

security = HTTPBearer(auto_error=False)


async def get_current_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Session]:
    """Get the current session from bearer token or cookie (None if absent)."""
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    return verify_session_token(token)


async def require_session(session: Optional[Session] = Depends(get_current_session)) -> Session:
    """Require a valid session (any role)."""
    if session is None:
        raise AuthError("Invalid or expired session")
    return session


async def require_admin(session: Session = Depends(require_session)) -> Session:
    """Require the Admin role."""
    if not session.is_admin:
        raise ForbiddenError("Forbidden")
    return session
