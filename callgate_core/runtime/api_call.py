"""
Bridge between an RPC method and per-call configuration.

An ApiCall binds a raw invocation function (in sync and async forms) to base
CallSettings. Each call merges its own settings onto the base and hands the
result down a chain of stages: optional user-agent and retry decorators,
ending in a TransportStage that converts settings into CallOptions and calls
the raw function. Decorating an ApiCall returns a new one with a longer
chain; the undecorated one keeps working unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Generic, TypeVar

from .clock import SYSTEM_CLOCK, Clock
from .errors import ConfigurationError
from .retry import RetryAttempts, retry_async, retry_sync
from .scheduler import Scheduler
from .settings import CallOptions, CallSettings, Expiration

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")

SyncCall = Callable[[TRequest, CallOptions], TResponse]
AsyncCall = Callable[[TRequest, CallOptions], Awaitable[TResponse]]


def _check_not_none(value, name: str):
    if value is None:
        raise ConfigurationError(f"{name} must not be None")
    return value


class CallStage(ABC, Generic[TRequest, TResponse]):
    """One link of the invocation chain, receiving already-merged settings."""

    @abstractmethod
    def call_sync(self, request: TRequest, settings: CallSettings) -> TResponse:
        ...

    @abstractmethod
    async def call_async(self, request: TRequest, settings: CallSettings) -> TResponse:
        ...


class TransportStage(CallStage[TRequest, TResponse]):
    """Terminal stage: converts settings to CallOptions and calls the raw function."""

    def __init__(
        self,
        async_call: AsyncCall,
        sync_call: SyncCall,
        clock: Clock,
    ):
        self._async_call = _check_not_none(async_call, "async_call")
        self._sync_call = _check_not_none(sync_call, "sync_call")
        self._clock = _check_not_none(clock, "clock")

    def call_sync(self, request: TRequest, settings: CallSettings) -> TResponse:
        return self._sync_call(request, settings.to_call_options(self._clock))

    async def call_async(self, request: TRequest, settings: CallSettings) -> TResponse:
        return await self._async_call(request, settings.to_call_options(self._clock))


class UserAgentStage(CallStage[TRequest, TResponse]):
    """Appends a user-agent fragment before delegating."""

    def __init__(self, next_stage: CallStage[TRequest, TResponse], fragment: str):
        self._next = _check_not_none(next_stage, "next_stage")
        if not fragment:
            raise ConfigurationError("User agent fragment must be a non-empty string")
        self._fragment = fragment

    def call_sync(self, request: TRequest, settings: CallSettings) -> TResponse:
        return self._next.call_sync(request, settings.with_user_agent(self._fragment))

    async def call_async(self, request: TRequest, settings: CallSettings) -> TResponse:
        return await self._next.call_async(request, settings.with_user_agent(self._fragment))


class RetryStage(CallStage[TRequest, TResponse]):
    """Retries the next stage according to the merged settings' RetryPolicy.

    Settings without a policy pass straight through. Otherwise the deadline
    is fixed once at the start of the call, so every attempt is sent with
    the time remaining rather than a fresh timeout.
    """

    def __init__(
        self,
        next_stage: CallStage[TRequest, TResponse],
        clock: Clock,
        scheduler: Scheduler,
        name: str = "rpc",
    ):
        self._next = _check_not_none(next_stage, "next_stage")
        self._clock = _check_not_none(clock, "clock")
        self._scheduler = _check_not_none(scheduler, "scheduler")
        self._name = name

    def _begin(self, settings: CallSettings) -> tuple[RetryAttempts, CallSettings]:
        deadline = settings.expiration.calculate_deadline(self._clock) if settings.expiration else None
        attempts = RetryAttempts(
            settings.retry,
            self._clock,
            deadline=deadline,
            cancellation=settings.cancellation,
            name=self._name,
        )
        if attempts.deadline is not None:
            settings = settings.with_expiration(Expiration.from_deadline(attempts.deadline))
        return attempts, settings

    def call_sync(self, request: TRequest, settings: CallSettings) -> TResponse:
        if settings.retry is None:
            return self._next.call_sync(request, settings)
        attempts, attempt_settings = self._begin(settings)
        return retry_sync(
            lambda: self._next.call_sync(request, attempt_settings),
            attempts,
            self._scheduler,
        )

    async def call_async(self, request: TRequest, settings: CallSettings) -> TResponse:
        if settings.retry is None:
            return await self._next.call_async(request, settings)
        attempts, attempt_settings = self._begin(settings)
        return await retry_async(
            lambda: self._next.call_async(request, attempt_settings),
            attempts,
            self._scheduler,
        )


class ApiCall(Generic[TRequest, TResponse]):
    """Bridge between an RPC method and higher level abstractions.

    Usage:
        call = ApiCall.create(unary_async_call(aio_stub.GetThing), unary_sync_call(stub.GetThing), base)
        call = call.with_retry(SYSTEM_CLOCK, SYSTEM_SCHEDULER).with_user_agent("gen/1.0")
        response = call.call_sync(request, CallSettings.from_timeout(5))
    """

    def __init__(
        self,
        stage: CallStage[TRequest, TResponse],
        base_settings: CallSettings,
        name: str = "rpc",
    ):
        self._stage = _check_not_none(stage, "stage")
        self._base_settings = _check_not_none(base_settings, "base_settings")
        self.name = name

    @classmethod
    def create(
        cls,
        async_call: AsyncCall,
        sync_call: SyncCall,
        base_settings: CallSettings,
        clock: Clock = SYSTEM_CLOCK,
        name: str = "rpc",
    ) -> "ApiCall[TRequest, TResponse]":
        """Create a bridge over raw functions taking (request, CallOptions).

        Args:
            async_call: Raw async invocation function.
            sync_call: Raw blocking invocation function.
            base_settings: Defaults every call is merged onto.
            clock: Time source for deadline conversion.
            name: Method name used in logs.

        Returns:
            A new ApiCall with no decorators.
        """
        return cls(TransportStage(async_call, sync_call, clock), base_settings, name)

    @property
    def base_settings(self) -> CallSettings:
        return self._base_settings

    async def call_async(
        self,
        request: TRequest,
        per_call_settings: CallSettings | None = None,
    ) -> TResponse:
        """Perform the RPC asynchronously.

        Args:
            request: The RPC request.
            per_call_settings: Settings for this call, overriding defaults.

        Returns:
            The RPC response.
        """
        settings = self._base_settings.merge(per_call_settings)
        return await self._stage.call_async(request, settings)

    def call_sync(
        self,
        request: TRequest,
        per_call_settings: CallSettings | None = None,
    ) -> TResponse:
        """Perform the RPC synchronously, blocking the calling thread."""
        settings = self._base_settings.merge(per_call_settings)
        return self._stage.call_sync(request, settings)

    def with_user_agent(self, fragment: str) -> "ApiCall[TRequest, TResponse]":
        """Return a bridge that also appends fragment to the user agent."""
        return ApiCall(UserAgentStage(self._stage, fragment), self._base_settings, self.name)

    def with_retry(self, clock: Clock, scheduler: Scheduler) -> "ApiCall[TRequest, TResponse]":
        """Return a bridge that retries per the merged settings' RetryPolicy."""
        return ApiCall(RetryStage(self._stage, clock, scheduler, self.name), self._base_settings, self.name)

    def __repr__(self) -> str:
        return f"ApiCall(name={self.name!r})"
