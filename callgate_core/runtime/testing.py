"""
Deterministic time for tests.

FakeClock only moves when told to; FakeScheduler "waits" by advancing it, so
a retry schedule of any length runs instantly and can be asserted on.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from .cancellation import CancellationToken
from .clock import Clock
from .scheduler import Scheduler


class FakeClock(Clock):
    """Manually advanced clock. Starts at 2020-01-01T00:00:00Z by default."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2020, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float | timedelta) -> None:
        if not isinstance(seconds, timedelta):
            seconds = timedelta(seconds=seconds)
        with self._lock:
            self._now += seconds


class FakeScheduler(Scheduler):
    """Scheduler that advances a FakeClock instead of waiting.

    Every requested wait is recorded in `delays`. An optional on_wait hook
    runs before the clock moves, which lets a test fire a cancellation token
    "during" a wait.
    """

    def __init__(
        self,
        clock: FakeClock | None = None,
        on_wait: Callable[[float], None] | None = None,
    ):
        self.clock = clock or FakeClock()
        self.on_wait = on_wait
        self.delays: list[float] = []

    def _wait(self, seconds: float, cancellation: CancellationToken | None) -> None:
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        self.delays.append(seconds)
        if self.on_wait is not None:
            self.on_wait(seconds)
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        self.clock.advance(max(0.0, seconds))

    async def delay(
        self,
        seconds: float,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self._wait(seconds, cancellation)
        await asyncio.sleep(0)

    def sleep(
        self,
        seconds: float,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self._wait(seconds, cancellation)

    @property
    def total_delay(self) -> float:
        return sum(self.delays)
