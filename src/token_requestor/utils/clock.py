"""
Clock and jitter abstractions.

The reconciler never reads process-wide time directly. A clock and a
jitter function are handed to it at construction so concurrent
reconciliations share no time source and tests can pin both.
"""

import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

JitterFunc = Callable[[timedelta, float], timedelta]


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime: ...


class RealClock:
    """Clock backed by the system time, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FakeClock:
    """Manually advanced clock for deterministic tests."""

    def __init__(self, now: datetime):
        if now.tzinfo is None:
            raise ValueError("FakeClock requires a timezone-aware datetime")
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def step(self, delta: timedelta) -> None:
        self._now += delta


def jitter(duration: timedelta, max_factor: float) -> timedelta:
    """
    Return a duration between duration and duration * (1 + max_factor).

    A non-positive max_factor disables jitter.
    """
    if max_factor <= 0.0:
        return duration
    return duration + duration * (random.random() * max_factor)


def no_jitter(duration: timedelta, _max_factor: float) -> timedelta:
    """Jitter function that returns the duration unchanged."""
    return duration
