"""Time and size helpers shared by models, services and CLI output."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 string (or pass through a datetime) into UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_duration(remaining: timedelta) -> str:
    """Format a duration as "1h 2m 3s", "2m 3s" or "3s"."""
    total_seconds = max(0, int(remaining.total_seconds()))
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def format_size(size_bytes: int) -> str:
    """Format a byte count for display (e.g. "1.5 KB")."""
    if size_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if index == 0:
        return f"{int(value)} Bytes"
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {units[index]}"
