"""Timestamps as they appear in prompt files and backend metadata."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pendulum


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes so they can be compared with aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(value: str | float | date | datetime) -> datetime:
    """Read a record timestamp into an aware datetime.

    YAML front matter may already have produced a ``date`` or ``datetime``.
    Strings are ISO 8601 in any of the forms older clients wrote, JavaScript
    ``...Z`` included; numbers are epoch milliseconds. Values without a zone
    are UTC and date-only values are midnight.

    Raises ValueError for anything else.
    """
    if isinstance(value, bool):
        msg = f"Not a timestamp: {value!r}"
        raise ValueError(msg)
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return pendulum.from_timestamp(value / 1000, tz="UTC")

    parsed = pendulum.parse(str(value).strip(), tz="UTC", strict=False)
    if isinstance(parsed, pendulum.DateTime):
        return parsed
    if isinstance(parsed, pendulum.Date):
        return pendulum.datetime(parsed.year, parsed.month, parsed.day, tz="UTC")
    msg = f"Not a timestamp: {value!r}"
    raise ValueError(msg)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """ISO 8601 with offset; naive values are written as UTC."""
    return ensure_aware(dt).isoformat()
