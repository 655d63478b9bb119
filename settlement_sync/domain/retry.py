"""
Retry backoff table for sync jobs.

A fixed escalating table rather than multiplicative backoff: attempt index
0 waits 1 minute, then 5 minutes, 15 minutes, 1 hour, 6 hours.  An index at
or past the end of the table means retries are exhausted.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

DEFAULT_RETRY_SCHEDULE_SECONDS: tuple[int, ...] = (60, 300, 900, 3600, 21600)


class RetrySchedule:
    def __init__(self, delays_seconds: Sequence[int] = DEFAULT_RETRY_SCHEDULE_SECONDS):
        if not delays_seconds:
            raise ValueError("Retry schedule needs at least one delay")
        self._delays = tuple(timedelta(seconds=s) for s in delays_seconds)

    @property
    def max_retries(self) -> int:
        return len(self._delays)

    def delay_for(self, retry_count: int) -> timedelta | None:
        if retry_count < 0:
            raise ValueError(f"retry_count must be >= 0, got {retry_count}")
        if retry_count >= len(self._delays):
            return None
        return self._delays[retry_count]

    def next_retry_time(self, retry_count: int, now: datetime) -> datetime | None:
        """When attempt ``retry_count`` should run again, or None if exhausted."""
        delay = self.delay_for(retry_count)
        return now + delay if delay is not None else None
