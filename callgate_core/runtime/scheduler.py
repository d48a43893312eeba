"""
Suspension abstraction for retry backoff.

A Scheduler answers "resume after this many seconds, unless cancelled".
The async form suspends the current task; the sync form blocks only the
calling thread, so concurrent synchronous retries never share a waiter.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod

from .cancellation import CancellationToken, with_cancellation
from .errors import CallCancelledError


class Scheduler(ABC):
    """Waits for a duration, aborting with CallCancelledError on cancellation."""

    @abstractmethod
    async def delay(
        self,
        seconds: float,
        cancellation: CancellationToken | None = None,
    ) -> None:
        """Suspend the current task for the given number of seconds."""
        ...

    @abstractmethod
    def sleep(
        self,
        seconds: float,
        cancellation: CancellationToken | None = None,
    ) -> None:
        """Block the calling thread for the given number of seconds."""
        ...


class SystemScheduler(Scheduler):
    """Scheduler backed by real timers."""

    async def delay(
        self,
        seconds: float,
        cancellation: CancellationToken | None = None,
    ) -> None:
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        timer = asyncio.ensure_future(asyncio.sleep(max(0.0, seconds)))
        try:
            await with_cancellation(timer, cancellation)
        finally:
            if not timer.done():
                timer.cancel()

    def sleep(
        self,
        seconds: float,
        cancellation: CancellationToken | None = None,
    ) -> None:
        seconds = max(0.0, seconds)
        if cancellation is None or not cancellation.can_be_cancelled:
            time.sleep(seconds)
            return
        if cancellation.wait(seconds):
            raise CallCancelledError()

    def __repr__(self) -> str:
        return "SystemScheduler()"


SYSTEM_SCHEDULER = SystemScheduler()
