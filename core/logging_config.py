"""Structured logging configuration with correlation fields."""
import logging
import json
import sys
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextvars import ContextVar

# Context variables for log correlation
current_request_id: ContextVar[str] = ContextVar("request_id", default="")
current_vehicle_id: ContextVar[str] = ContextVar("vehicle_id", default="")
current_action: ContextVar[str] = ContextVar("action", default="")


def generate_request_id() -> str:
    """Generate a short request ID for log correlation."""
    return uuid.uuid4().hex[:8]


def set_context(
    request_id: Optional[str] = None,
    vehicle_id: Optional[str] = None,
    action: Optional[str] = None,
) -> None:
    """Set logging context variables."""
    if request_id is not None:
        current_request_id.set(request_id)
    if vehicle_id is not None:
        current_vehicle_id.set(vehicle_id)
    if action is not None:
        current_action.set(action)


def clear_context() -> None:
    """Clear all logging context variables."""
    current_request_id.set("")
    current_vehicle_id.set("")
    current_action.set("")


class JSONFormatter(logging.Formatter):
    """JSON log formatter with correlation fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if request_id := current_request_id.get():
            log_data["request_id"] = request_id
        if vehicle_id := current_vehicle_id.get():
            log_data["vehicle_id"] = vehicle_id
        if action := current_action.get():
            log_data["action"] = action

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter with correlation fields."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        ctx_parts = []
        if request_id := current_request_id.get():
            ctx_parts.append(f"req={request_id}")
        if action := current_action.get():
            ctx_parts.append(f"action={action}")
        if vehicle_id := current_vehicle_id.get():
            ctx_parts.append(f"vehicle={vehicle_id}")

        ctx_str = f" [{', '.join(ctx_parts)}]" if ctx_parts else ""

        msg = f"{timestamp} {record.levelname:8s} {record.name}{ctx_str}: {record.getMessage()}"

        if hasattr(record, "extra_fields"):
            extras = " ".join(f"{k}={v}" for k, v in record.extra_fields.items())
            if extras:
                msg += f" ({extras})"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    logger_name: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" for structured logs, "text" for human-readable
        logger_name: Specific logger name, or None for root logger

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))

    if format_type.lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if logger_name is not None:
        logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Log a message with structured extra fields picked up by the formatters."""
    logger.log(level, message, extra={"extra_fields": fields})


class LogContext:
    """Context manager for setting and clearing log context."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        vehicle_id: Optional[str] = None,
        action: Optional[str] = None,
    ):
        self.request_id = request_id
        self.vehicle_id = vehicle_id
        self.action = action
        self._tokens = {}

    def __enter__(self):
        if self.request_id:
            self._tokens["request_id"] = current_request_id.set(self.request_id)
        if self.vehicle_id:
            self._tokens["vehicle_id"] = current_vehicle_id.set(self.vehicle_id)
        if self.action:
            self._tokens["action"] = current_action.set(self.action)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for name, token in self._tokens.items():
            globals()[f"current_{name}"].reset(token)
        return False
