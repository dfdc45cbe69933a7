"""Core modules for configuration, errors and logging."""

from core.config import (
    AppConfig,
    AuthConfig,
    CacheConfig,
    ConfigurationError,
    CronConfig,
    DriveConfig,
    UpstreamConfig,
    get_config,
    load_config_from_env,
    reset_config,
)
from core.errors import (
    AuthError,
    ConfigError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
    VehicleServiceError,
)
from core.logging_config import (
    LogContext,
    clear_context,
    generate_request_id,
    get_logger,
    log_with_fields,
    set_context,
    setup_logging,
)

__all__ = [
    "AppConfig",
    "AuthConfig",
    "CacheConfig",
    "CronConfig",
    "DriveConfig",
    "UpstreamConfig",
    "ConfigurationError",
    "load_config_from_env",
    "get_config",
    "reset_config",
    "VehicleServiceError",
    "ConfigError",
    "ValidationError",
    "AuthError",
    "ForbiddenError",
    "NotFoundError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "setup_logging",
    "get_logger",
    "log_with_fields",
    "LogContext",
    "generate_request_id",
    "set_context",
    "clear_context",
]
