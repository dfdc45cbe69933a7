"""Timestamps in the sheet's local timezone (Asia/Phnom_Penh)."""
import re
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

LOCAL_TIMEZONE = ZoneInfo("Asia/Phnom_Penh")
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_OFFSET_SUFFIX = re.compile(r"[+-]\d{2}:?\d{2}$")


def format_local(dt: datetime) -> str:
    """Format an aware or naive (assumed UTC) datetime as local sheet time."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(LOCAL_TIMEZONE).strftime(TIME_FORMAT)


def now_string(now: Optional[datetime] = None) -> str:
    return format_local(now or datetime.now(timezone.utc))


def normalize_time_string(value: Any) -> str:
    """
    Normalize a Time value for the sheet.

    ISO-looking strings (containing ``T``, ending in ``Z`` or an offset) are
    converted to local ``YYYY-MM-DD HH:MM:SS``. Anything else, including
    strings already in sheet format, passes through trimmed.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_local(value)

    raw = str(value).strip()
    if not raw:
        return ""

    looks_iso = "T" in raw or raw.endswith("Z") or bool(_OFFSET_SUFFIX.search(raw))
    if not looks_iso:
        return raw

    candidate = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return raw
    return format_local(parsed)
