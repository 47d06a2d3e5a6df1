"""Saturating timestamp arithmetic.

Message visibility is driven entirely by the ``earliestGet`` date stored on
each document, so every conversion into that field goes through here. Values
are UTC-aware ``datetime`` objects truncated to milliseconds (the resolution
of a BSON date) and clamped into ``[MIN_TIMESTAMP, MAX_TIMESTAMP]``. Nothing in
this module raises ``OverflowError``; out of range inputs saturate.

Example:
    >>> from docqueue.utils.timestamps import MAX_TIMESTAMP, add_duration, to_timestamp
    >>> to_timestamp(0).isoformat()
    '1970-01-01T00:00:00+00:00'
    >>> add_duration(to_timestamp(0), 1e300) == MAX_TIMESTAMP
    True
    >>> to_timestamp(-5).isoformat()
    '1970-01-01T00:00:00+00:00'
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from numbers import Real

from docqueue.core.exceptions import ValidationError

MIN_TIMESTAMP = datetime(1970, 1, 1, tzinfo=UTC)
MAX_TIMESTAMP = datetime(9999, 12, 31, 23, 59, 59, 999000, tzinfo=UTC)

_MAX_SECONDS = (MAX_TIMESTAMP - MIN_TIMESTAMP).total_seconds()


def truncate_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision.

    Example:
        >>> from datetime import UTC, datetime
        >>> truncate_millis(datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=UTC)).microsecond
        123000
    """
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def utcnow() -> datetime:
    """Current time as stored by the queue."""
    return truncate_millis(datetime.now(UTC))


def _require_real(value: object, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{name} was not a number")
    number = float(value)
    if math.isnan(number):
        raise ValidationError(f"{name} was NaN")
    return number


def from_seconds(seconds: float) -> datetime:
    """Convert seconds since the Unix epoch into a clamped timestamp.

    Example:
        >>> from_seconds(1.5).isoformat()
        '1970-01-01T00:00:01.500000+00:00'
    """
    seconds = _require_real(seconds, "timestamp")
    if seconds <= 0:
        return MIN_TIMESTAMP
    if seconds >= _MAX_SECONDS:
        return MAX_TIMESTAMP
    return truncate_millis(MIN_TIMESTAMP + timedelta(seconds=seconds))


def clamp(value: datetime) -> datetime:
    """Clamp a datetime into the storable range.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    if value <= MIN_TIMESTAMP:
        return MIN_TIMESTAMP
    if value >= MAX_TIMESTAMP:
        return MAX_TIMESTAMP
    return truncate_millis(value.astimezone(UTC))


def to_timestamp(value: datetime | float | int) -> datetime:
    """Accept a datetime or epoch seconds and return a clamped UTC timestamp.

    Raises:
        ValidationError: If value is neither a datetime nor a real number,
            or is NaN.
    """
    if isinstance(value, datetime):
        return clamp(value)
    return from_seconds(value)


def add_duration(start: datetime, seconds: float) -> datetime:
    """Return ``start + seconds`` saturated to the storable range.

    Example:
        >>> from docqueue.utils.timestamps import MIN_TIMESTAMP, add_duration, to_timestamp
        >>> add_duration(to_timestamp(10), -1e12) == MIN_TIMESTAMP
        True
        >>> add_duration(to_timestamp(10), 2.25).isoformat()
        '1970-01-01T00:00:12.250000+00:00'
    """
    seconds = _require_real(seconds, "duration")
    start = clamp(start)
    if seconds >= (MAX_TIMESTAMP - start).total_seconds():
        return MAX_TIMESTAMP
    if seconds <= -(start - MIN_TIMESTAMP).total_seconds():
        return MIN_TIMESTAMP
    return truncate_millis(start + timedelta(seconds=seconds))


def validate_duration(seconds: float, name: str) -> float:
    """Validate a duration in seconds, returning it as a float.

    Infinite durations are allowed; callers saturate them.
    """
    return _require_real(seconds, name)
