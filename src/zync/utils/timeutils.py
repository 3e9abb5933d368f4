"""Timestamp helpers shared by the engine, storage and reference server."""

from __future__ import annotations

from datetime import UTC, datetime

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def to_iso(value: datetime, timespec: str = "milliseconds") -> str:
    """Format a datetime as ISO-8601 in UTC (millisecond precision by default)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec=timespec)


def utcnow_iso() -> str:
    return to_iso(utcnow())


def parse_timestamp(value: str | datetime | None) -> datetime:
    """Parse a server timestamp; missing or unparseable values map to the epoch.

    Naive values are assumed to be UTC. A trailing ``Z`` is accepted.
    """
    if value is None:
        return EPOCH
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
