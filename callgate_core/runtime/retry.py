"""
Retry policy configuration and retry loops.

This module provides bounded, clock-driven retry with exponential backoff and
optional jitter. Time is read from a Clock and waits go through a Scheduler,
so the whole loop can be fast-forwarded under test.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import Awaitable, Callable, TypeVar

import grpc
from loguru import logger
from pydantic import BaseModel, Field, model_validator

from callgate_core.config import Settings, settings

from .cancellation import CancellationToken
from .clock import Clock
from .errors import CallCancelledError, DeadlineExceededError, status_code_of
from .scheduler import Scheduler

T = TypeVar("T")

# Jitter adds up to this fraction of the delay, never past max_backoff
JITTER_RATIO = 0.25


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    The first wait is initial_backoff; each later wait is the previous one
    times backoff_multiplier, capped at max_backoff. The loop stops at
    max_attempts attempts, or when the deadline (the call's own, tightened by
    total_timeout) has passed.

    Attributes:
        retry_on_status: gRPC status codes that trigger a retry.
        initial_backoff: Delay in seconds before the second attempt.
        max_backoff: Maximum delay in seconds (caps backoff).
        backoff_multiplier: Growth factor between consecutive delays.
        jitter: Whether to add random jitter to delays.
        max_attempts: Maximum number of attempts (including initial), or None.
        total_timeout: Budget in seconds for all attempts, or None.
    """

    retry_on_status: tuple[grpc.StatusCode, ...] = (grpc.StatusCode.UNAVAILABLE,)
    initial_backoff: float = Field(default=1.0, ge=0.0)
    max_backoff: float = Field(default=60.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True
    max_attempts: int | None = Field(default=3, ge=1)
    total_timeout: float | None = Field(default=None, gt=0.0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_bounds(self) -> "RetryPolicy":
        if self.max_backoff < self.initial_backoff:
            raise ValueError("max_backoff must not be less than initial_backoff")
        if self.max_attempts is None and self.total_timeout is None:
            raise ValueError("A retry policy needs max_attempts, total_timeout or both")
        return self

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "RetryPolicy":
        """Build the library-wide default policy from configuration."""
        config = config or settings
        return cls(
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            initial_backoff=config.RETRY_INITIAL_BACKOFF,
            max_backoff=config.RETRY_MAX_BACKOFF,
            backoff_multiplier=config.RETRY_BACKOFF_MULTIPLIER,
            jitter=config.RETRY_JITTER,
        )

    def should_retry(self, exc: BaseException) -> bool:
        """Check if a failure's status code should trigger a retry."""
        return status_code_of(exc) in self.retry_on_status

    def next_backoff(self, delay: float) -> float:
        """Return the delay that follows delay."""
        return min(delay * self.backoff_multiplier, self.max_backoff)

    def apply_jitter(self, delay: float) -> float:
        if not self.jitter:
            return delay
        return min(delay + delay * JITTER_RATIO * random.random(), self.max_backoff)


# Default policy for general use
DEFAULT_RETRY_POLICY = RetryPolicy.from_settings()


class RetryAttempts:
    """Book-keeping for one retried call.

    Tracks the start time, the effective deadline, the attempt count and the
    current backoff, and decides after every failure whether to wait or stop.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        clock: Clock,
        deadline: datetime | None = None,
        cancellation: CancellationToken | None = None,
        name: str = "call",
    ):
        self.policy = policy
        self.clock = clock
        self.cancellation = cancellation
        self.name = name
        self.start = clock.now()
        if policy.total_timeout is not None:
            budget_end = self.start + timedelta(seconds=policy.total_timeout)
            deadline = budget_end if deadline is None else min(deadline, budget_end)
        self.deadline = deadline
        self.attempt = 0
        self.delay = policy.initial_backoff

    def next_wait(self, exc: Exception) -> float:
        """Classify a failed attempt.

        Returns:
            Seconds to wait before the next attempt.

        Raises:
            The failure itself when it is not retryable or attempts ran out,
            CallCancelledError when cancellation fired, DeadlineExceededError
            when the deadline has passed.
        """
        self.attempt += 1
        if not self.policy.should_retry(exc):
            raise exc
        if self.cancellation is not None and self.cancellation.is_cancelled:
            raise CallCancelledError(cause=exc) from exc

        now = self.clock.now()
        if self.deadline is not None and now >= self.deadline:
            logger.warning(
                f"Deadline reached for {self.name} after {self.attempt} attempt(s): {exc}"
            )
            if status_code_of(exc) == grpc.StatusCode.DEADLINE_EXCEEDED:
                raise exc
            raise DeadlineExceededError(cause=exc) from exc
        if self.policy.max_attempts is not None and self.attempt >= self.policy.max_attempts:
            logger.warning(
                f"Max retries ({self.policy.max_attempts}) exceeded for {self.name}: {exc}"
            )
            raise exc

        wait = self.policy.apply_jitter(self.delay)
        if self.deadline is not None:
            # Land the next attempt on the deadline rather than past it
            wait = min(wait, (self.deadline - now).total_seconds())
        self.delay = self.policy.next_backoff(self.delay)

        logger.info(
            f"Retry {self.attempt}/{self.policy.max_attempts or '-'} "
            f"for {self.name} in {wait:.2f}s: {exc}"
        )
        return wait


def retry_sync(
    func: Callable[[], T],
    attempts: RetryAttempts,
    scheduler: Scheduler,
) -> T:
    """Call func until it succeeds or attempts decides to stop.

    Waits block only the calling thread.
    """
    while True:
        try:
            return func()
        except Exception as exc:
            wait = attempts.next_wait(exc)
        scheduler.sleep(wait, attempts.cancellation)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    attempts: RetryAttempts,
    scheduler: Scheduler,
) -> T:
    """Await func() until it succeeds or attempts decides to stop."""
    while True:
        try:
            return await func()
        except Exception as exc:
            wait = attempts.next_wait(exc)
        await scheduler.delay(wait, attempts.cancellation)
