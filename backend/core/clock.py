"""Clock abstraction used wherever scheduling code needs "now"."""

from datetime import datetime, timezone
from typing import Protocol


def to_utc_naive(value: datetime) -> datetime:
    """Return ``value`` as a naive UTC datetime.

    Aware datetimes are converted to UTC first; naive ones are assumed to
    already be UTC. This is the form every instant is stored in.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock, in naive UTC."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """Clock frozen at a given instant; ``advance_to`` moves it."""

    def __init__(self, current: datetime):
        self._current = to_utc_naive(current)

    def now(self) -> datetime:
        return self._current

    def advance_to(self, current: datetime) -> None:
        self._current = to_utc_naive(current)


_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock
