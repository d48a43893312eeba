"""
Per-call configuration for RPC invocations.

CallSettings bundles the deadline, cancellation signal, headers, user agent
and retry policy of a call. Client code builds one base CallSettings at
configuration time; every call merges its own overrides on top of it and
converts the result into transport-level CallOptions.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator, model_validator

from callgate_core.config import settings as config

from .cancellation import CancellationToken
from .clock import Clock
from .retry import RetryPolicy


class Expiration(BaseModel):
    """When a call expires: a relative timeout or an absolute deadline.

    Attributes:
        timeout: Seconds from the start of the call, if relative.
        deadline: Aware datetime, if absolute.
    """

    timeout: float | None = Field(default=None, ge=0.0)
    deadline: datetime | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_exclusive(self) -> "Expiration":
        if self.timeout is not None and self.deadline is not None:
            raise ValueError("An expiration has a timeout or a deadline, not both")
        if self.deadline is not None and self.deadline.tzinfo is None:
            raise ValueError("Expiration deadlines must be timezone-aware")
        return self

    @classmethod
    def from_timeout(cls, timeout: float | timedelta) -> "Expiration":
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        return cls(timeout=timeout)

    @classmethod
    def from_deadline(cls, deadline: datetime) -> "Expiration":
        return cls(deadline=deadline)

    @property
    def is_unbounded(self) -> bool:
        return self.timeout is None and self.deadline is None

    def calculate_deadline(self, clock: Clock) -> datetime | None:
        """Return the absolute deadline, anchoring timeouts on clock.now()."""
        if self.deadline is not None:
            return self.deadline
        if self.timeout is not None:
            return clock.now() + timedelta(seconds=self.timeout)
        return None


class CallOptions(BaseModel):
    """Transport-level options for a single RPC attempt.

    Attributes:
        deadline: Absolute deadline, if any.
        timeout: Seconds remaining until the deadline (never negative).
        metadata: Header pairs sent with the call.
        cancellation: Signal the raw invocation may observe.
    """

    deadline: datetime | None = None
    timeout: float | None = None
    metadata: tuple[tuple[str, str], ...] = ()
    cancellation: CancellationToken | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class CallSettings(BaseModel):
    """Mergeable configuration of a single call.

    Unset fields (None, or empty headers) fall back to the base settings on
    merge. Instances are never mutated; the with_* helpers return copies.

    Attributes:
        expiration: Timeout or deadline of the call.
        cancellation: Signal that aborts waiting for the call.
        headers: Header name to value; names are case-insensitive.
        user_agent: User-agent fragment(s), space separated.
        retry: Retry policy, or None for no retries.
    """

    expiration: Expiration | None = None
    cancellation: CancellationToken | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    user_agent: str | None = None
    retry: RetryPolicy | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, Mapping):
            return {str(k).lower(): v for k, v in value.items()}
        return value

    # Factories

    @classmethod
    def from_expiration(cls, expiration: Expiration | None) -> "CallSettings":
        return cls(expiration=expiration)

    @classmethod
    def from_timeout(cls, timeout: float | timedelta) -> "CallSettings":
        return cls(expiration=Expiration.from_timeout(timeout))

    @classmethod
    def from_deadline(cls, deadline: datetime) -> "CallSettings":
        return cls(expiration=Expiration.from_deadline(deadline))

    @classmethod
    def from_cancellation(cls, cancellation: CancellationToken) -> "CallSettings":
        return cls(cancellation=cancellation)

    @classmethod
    def from_header(cls, name: str, value: str) -> "CallSettings":
        return cls(headers={name: value})

    @classmethod
    def from_user_agent(cls, user_agent: str) -> "CallSettings":
        return cls(user_agent=user_agent)

    @classmethod
    def from_retry(cls, retry: RetryPolicy | None) -> "CallSettings":
        return cls(retry=retry)

    # Copy-with helpers

    def with_expiration(self, expiration: Expiration | None) -> "CallSettings":
        return self.model_copy(update={"expiration": expiration})

    def with_cancellation(self, cancellation: CancellationToken | None) -> "CallSettings":
        return self.model_copy(update={"cancellation": cancellation})

    def with_retry(self, retry: RetryPolicy | None) -> "CallSettings":
        return self.model_copy(update={"retry": retry})

    def with_header(self, name: str, value: str) -> "CallSettings":
        """Return a copy with one more header (replacing a same-named one)."""
        return self.model_copy(update={"headers": {**self.headers, name.lower(): value}})

    def with_user_agent(self, fragment: str) -> "CallSettings":
        """Return a copy with fragment appended to the user agent."""
        return self.model_copy(update={"user_agent": _join_user_agents(self.user_agent, fragment)})

    def merge(self, override: "CallSettings | None") -> "CallSettings":
        """Return these settings overridden by override. Neither input changes."""
        if override is None:
            return self
        return CallSettings(
            expiration=override.expiration if override.expiration is not None else self.expiration,
            cancellation=CancellationToken.any(self.cancellation, override.cancellation),
            headers={**self.headers, **override.headers},
            user_agent=_join_user_agents(self.user_agent, override.user_agent),
            retry=override.retry if override.retry is not None else self.retry,
        )

    def to_call_options(self, clock: Clock) -> CallOptions:
        """Convert to transport options, resolving the deadline against clock.

        Args:
            clock: Time source for relative timeouts and the remaining time.

        Returns:
            CallOptions with an absolute deadline, remaining timeout and
            metadata including the user agent.
        """
        deadline = self.expiration.calculate_deadline(clock) if self.expiration else None
        timeout = None
        if deadline is not None:
            timeout = max(0.0, (deadline - clock.now()).total_seconds())

        headers = dict(self.headers)
        if self.user_agent:
            # An explicit user-agent header is extended rather than duplicated
            key = config.USER_AGENT_HEADER.lower()
            headers[key] = _join_user_agents(headers.get(key), self.user_agent)

        return CallOptions(
            deadline=deadline,
            timeout=timeout,
            metadata=tuple(headers.items()),
            cancellation=self.cancellation,
        )


def _join_user_agents(base: str | None, fragment: str | None) -> str | None:
    parts = [p for p in (base, fragment) if p]
    return " ".join(parts) if parts else None


def merge(base: CallSettings | None, override: CallSettings | None) -> CallSettings | None:
    """Merge per-call override onto base; either side may be None."""
    if base is None:
        return override
    return base.merge(override)
