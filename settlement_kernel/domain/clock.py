"""
Clock -- injectable time source.

Responsibility:
    Services, the rate cache and the sync queue never call ``datetime.now()``
    directly.  They receive a Clock so that retry schedules, cache expiry and
    snapshot timestamps are reproducible in tests.

Architecture position:
    Kernel > Domain.  SystemClock is the one sanctioned I/O boundary for time.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``monotonic()`` returns seconds usable for TTL arithmetic.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def monotonic(self) -> float:
        return self.now().timestamp()


class SystemClock(Clock):
    """Production clock returning real UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()`` or
    ``set_time()`` is called.  Safe to share between threads.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if self._time.tzinfo is None:
            self._time = self._time.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        self._time = time

    def advance(self, seconds: float = 1) -> datetime:
        """Advance the clock and return the new time."""
        self._time = self._time + timedelta(seconds=seconds)
        return self._time
