"""Timestamp helpers shared by both replicas.

The remote catalog stores JavaScript millisecond timestamps, so every
comparison in the engine happens at millisecond precision.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return round(value.timestamp() * 1000)


def from_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def from_mtime_ns(mtime_ns: int) -> datetime:
    """Convert a filesystem ``st_mtime_ns`` to a UTC datetime truncated to milliseconds."""
    return from_millis(mtime_ns // 1_000_000)


def to_mtime_ns(value: datetime) -> int:
    return to_millis(value) * 1_000_000


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the remote catalog."""
    if not raw:
        return None
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return from_millis(to_millis(parsed))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def same_instant(left: Optional[datetime], right: Optional[datetime]) -> bool:
    if left is None or right is None:
        return False
    return to_millis(left) == to_millis(right)
