"""Centralized configuration management with validation."""
import os
from dataclasses import dataclass, field
from typing import Optional, List
from urllib.parse import urlparse


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


DEFAULT_CACHE_TTL_MS = 10 * 60 * 1000

DEFAULT_DRIVE_FOLDER_CARS = "1UKgtZ_sSNSVy3p-8WBwBrploVL9IDxec"
DEFAULT_DRIVE_FOLDER_MOTORCYCLES = "10OcxTtK6ZqQj5cvPMNNIP4VsaVneGiYP"
DEFAULT_DRIVE_FOLDER_TUKTUK = "18oDOlZXE9JGE5EDZ7yL6oBRVG6SgVYdP"


def _mask_secret(value: str, visible_chars: int = 4) -> str:
    """Mask a secret value for logging, showing only first few chars."""
    if not value:
        return "<empty>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _parse_ttl_ms(raw: Optional[str]) -> int:
    """Parse VEHICLES_CACHE_TTL_MS. Missing or invalid values use the default."""
    if raw is None or not raw.strip():
        return DEFAULT_CACHE_TTL_MS
    try:
        parsed = int(raw.strip())
    except ValueError:
        return DEFAULT_CACHE_TTL_MS
    if parsed < 0:
        return DEFAULT_CACHE_TTL_MS
    return parsed


@dataclass
class UpstreamConfig:
    """Apps Script spreadsheet endpoint configuration."""
    base_url: str = ""
    upload_token: str = ""

    # Seconds
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    upload_timeout: float = 90.0
    lookup_timeout: float = 15.0
    ping_timeout: float = 5.0

    def validate(self) -> List[str]:
        """Validate upstream configuration, return list of errors."""
        errors = []
        if not self.base_url:
            errors.append("APPS_SCRIPT_URL (or NEXT_PUBLIC_API_URL) is required")
        else:
            parsed = urlparse(self.base_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(f"APPS_SCRIPT_URL is not a valid URL: {self.base_url}")
        return errors

    def __repr__(self) -> str:
        return (f"UpstreamConfig(base_url={self.base_url}, "
                f"upload_token={_mask_secret(self.upload_token)})")


@dataclass
class CacheConfig:
    """Server-side vehicle list cache configuration."""
    ttl_ms: int = DEFAULT_CACHE_TTL_MS

    @property
    def enabled(self) -> bool:
        return self.ttl_ms > 0

    def validate(self) -> List[str]:
        if self.ttl_ms < 0:
            return ["VEHICLES_CACHE_TTL_MS must not be negative"]
        return []


@dataclass
class DriveConfig:
    """Drive folder ids used as image upload targets, one per category."""
    folder_cars: str = DEFAULT_DRIVE_FOLDER_CARS
    folder_motorcycles: str = DEFAULT_DRIVE_FOLDER_MOTORCYCLES
    folder_tuktuk: str = DEFAULT_DRIVE_FOLDER_TUKTUK

    def validate(self) -> List[str]:
        errors = []
        if not self.folder_cars:
            errors.append("DRIVE_FOLDER_CARS must not be empty")
        if not self.folder_motorcycles:
            errors.append("DRIVE_FOLDER_MOTORCYCLES must not be empty")
        if not self.folder_tuktuk:
            errors.append("DRIVE_FOLDER_TUKTUK must not be empty")
        return errors


@dataclass
class AuthConfig:
    """Session token configuration."""
    session_secret: str = ""
    session_max_age_hours: int = 8

    def validate(self) -> List[str]:
        errors = []
        if self.session_max_age_hours <= 0:
            errors.append("SESSION_MAX_AGE_HOURS must be positive")
        return errors

    def __repr__(self) -> str:
        return (f"AuthConfig(session_secret={_mask_secret(self.session_secret)}, "
                f"session_max_age_hours={self.session_max_age_hours})")


@dataclass
class CronConfig:
    """Scheduled sync configuration."""
    secret: str = ""

    def __repr__(self) -> str:
        return f"CronConfig(secret={_mask_secret(self.secret)})"


@dataclass
class AppConfig:
    """Main application configuration."""
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    drive: DriveConfig = field(default_factory=DriveConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    cron: CronConfig = field(default_factory=CronConfig)

    # Runtime settings
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "text"  # "json" or "text"

    def validate(self, require_upstream: bool = True) -> None:
        """Validate all configuration, raise ConfigurationError if invalid."""
        errors = []

        if require_upstream:
            errors.extend(self.upstream.validate())

        errors.extend(self.cache.validate())
        errors.extend(self.drive.validate())
        errors.extend(self.auth.validate())

        if self.environment == "production" and not self.auth.session_secret:
            errors.append("SESSION_SECRET is required in production")

        if errors:
            raise ConfigurationError("Configuration errors:\n  - " + "\n  - ".join(errors))

    def __repr__(self) -> str:
        return (f"AppConfig(\n  upstream={self.upstream},\n  cache={self.cache},\n  "
                f"drive={self.drive},\n  auth={self.auth},\n  cron={self.cron},\n  "
                f"environment={self.environment}, log_level={self.log_level}\n)")


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables."""
    from dotenv import load_dotenv

    load_dotenv()

    base_url = _env_str("APPS_SCRIPT_URL") or _env_str("NEXT_PUBLIC_API_URL")

    config = AppConfig(
        upstream=UpstreamConfig(
            base_url=base_url,
            upload_token=_env_str("APPS_SCRIPT_UPLOAD_TOKEN"),
            read_timeout=float(os.getenv("UPSTREAM_READ_TIMEOUT", "30")),
            write_timeout=float(os.getenv("UPSTREAM_WRITE_TIMEOUT", "30")),
            upload_timeout=float(os.getenv("UPSTREAM_UPLOAD_TIMEOUT", "90")),
        ),
        cache=CacheConfig(
            ttl_ms=_parse_ttl_ms(os.getenv("VEHICLES_CACHE_TTL_MS")),
        ),
        drive=DriveConfig(
            folder_cars=_env_str("DRIVE_FOLDER_CARS", DEFAULT_DRIVE_FOLDER_CARS),
            folder_motorcycles=_env_str("DRIVE_FOLDER_MOTORCYCLES", DEFAULT_DRIVE_FOLDER_MOTORCYCLES),
            folder_tuktuk=_env_str("DRIVE_FOLDER_TUKTUK", DEFAULT_DRIVE_FOLDER_TUKTUK),
        ),
        auth=AuthConfig(
            session_secret=_env_str("SESSION_SECRET"),
            session_max_age_hours=int(os.getenv("SESSION_MAX_AGE_HOURS", "8")),
        ),
        cron=CronConfig(
            secret=_env_str("CRON_SECRET"),
        ),
        environment=_env_str("ENVIRONMENT", "development").lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "text"),
    )

    return config


# Singleton config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config_from_env()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
