"""Clock and duration helpers.

All timestamps in this service are naive UTC datetimes, matching what the
database columns store. The clock is injected into the session service and
the workers so tests can move time deliberately.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock returning naive UTC datetimes."""

    def now(self) -> datetime:
        return utcnow()


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes(value: int) -> timedelta:
    """Convert a stored minute count into a timedelta."""
    return timedelta(minutes=value)


def to_seconds(delta: timedelta) -> float:
    return delta.total_seconds()


def from_seconds(seconds: float) -> timedelta:
    return timedelta(seconds=seconds)


def remaining_until(deadline: datetime, now: datetime) -> timedelta:
    """Time left until ``deadline``, never negative."""
    if deadline <= now:
        return timedelta(0)
    return deadline - now


def whole_seconds(delta: timedelta) -> int:
    """Round a timedelta down to whole seconds for public projections."""
    return max(int(delta.total_seconds()), 0)
