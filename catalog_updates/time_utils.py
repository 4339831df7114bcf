"""
Shared datetime helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


BACKUP_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp and normalize it to UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def format_backup_timestamp(dt: datetime) -> str:
    """Render ``dt`` as a filename-safe ISO timestamp.

    ``2023-01-15T10:30:45.123Z`` becomes ``2023-01-15T10-30-45-123Z``.
    """
    dt = ensure_utc(dt)
    return f"{dt.strftime(BACKUP_TIMESTAMP_FORMAT)}-{dt.microsecond // 1000:03d}Z"


def parse_backup_timestamp(value: str) -> Optional[datetime]:
    """Inverse of :func:`format_backup_timestamp`; ``None`` when malformed."""
    if not value.endswith("Z"):
        return None
    body = value[:-1]
    stamp, _, millis = body.rpartition("-")
    if not stamp or len(millis) != 3 or not millis.isdigit():
        return None
    try:
        parsed = datetime.strptime(stamp, BACKUP_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(microsecond=int(millis) * 1000, tzinfo=timezone.utc)


def format_display_time(dt: datetime) -> str:
    return ensure_utc(dt).strftime("%Y-%m-%d %H:%M:%S")
