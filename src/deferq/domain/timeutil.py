"""Instant conversions between aware datetimes and Unix epoch milliseconds.

Executions are scheduled with millisecond resolution. Every instant that
enters the domain is normalized to UTC and truncated to whole milliseconds
so that the in-memory and SQL repositories compare identical values.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def to_unix_millis(instant: datetime) -> int:
    """Convert an aware datetime to integer milliseconds since the epoch.

    Raises:
        ValueError: If *instant* is naive.
    """
    if instant.tzinfo is None:
        msg = f"Naive datetime is not an instant: {instant!r}"
        raise ValueError(msg)
    return (instant - _EPOCH) // timedelta(milliseconds=1)


def from_unix_millis(millis: int) -> datetime:
    """Convert epoch milliseconds back to an aware UTC datetime."""
    return _EPOCH + timedelta(milliseconds=millis)


def truncate_to_millis(instant: datetime) -> datetime:
    """Normalize *instant* to UTC, dropping sub-millisecond precision."""
    return from_unix_millis(to_unix_millis(instant))


def millis(value: int) -> timedelta:
    """Shorthand for ``timedelta(milliseconds=value)``."""
    return timedelta(milliseconds=value)


def now_utc() -> datetime:
    """Current UTC time."""
    return datetime.now(UTC)
