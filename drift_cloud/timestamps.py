"""Timestamps stored in persisted sync state."""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Format as ISO 8601; naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def parse_timestamp(value: str, default_tz: str = "UTC") -> datetime:
    """Parse a persisted timestamp leniently.

    Accepts ISO 8601 with ``T`` or space separator and bare dates.  Values
    without an offset are taken to be in ``default_tz``.
    """
    parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    if isinstance(parsed, pendulum.DateTime):
        return parsed
    if isinstance(parsed, pendulum.Date):
        return pendulum.datetime(parsed.year, parsed.month, parsed.day, tz=default_tz)
    msg = f"Not a timestamp: {value!r}"
    raise ValueError(msg)
