"""
Raw invocation functions over grpc unary-unary multicallables.

These adapt a generated stub method to the (request, CallOptions) signature
ApiCall expects: the remaining timeout and metadata are passed through, and
firing the cancellation token cancels the in-flight grpc call.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import grpc
from grpc import aio

from callgate_core.runtime.errors import CallCancelledError
from callgate_core.runtime.settings import CallOptions


def _metadata(options: CallOptions) -> tuple[tuple[str, str], ...] | None:
    return options.metadata or None


def unary_sync_call(
    multicallable: grpc.UnaryUnaryMultiCallable,
) -> Callable[[Any, CallOptions], Any]:
    """Wrap a blocking stub method as a raw sync invocation function."""

    def invoke(request: Any, options: CallOptions) -> Any:
        future = multicallable.future(
            request,
            timeout=options.timeout,
            metadata=_metadata(options),
        )
        unregister = options.cancellation.register(future.cancel) if options.cancellation else None
        try:
            return future.result()
        except grpc.FutureCancelledError as e:
            raise CallCancelledError(cause=e) from e
        finally:
            if unregister is not None:
                unregister()

    return invoke


def unary_async_call(
    multicallable: aio.UnaryUnaryMultiCallable,
) -> Callable[[Any, CallOptions], Awaitable[Any]]:
    """Wrap a grpc.aio stub method as a raw async invocation function."""

    async def invoke(request: Any, options: CallOptions) -> Any:
        call = multicallable(
            request,
            timeout=options.timeout,
            metadata=_metadata(options),
        )
        unregister = None
        if options.cancellation is not None:
            loop = asyncio.get_running_loop()
            unregister = options.cancellation.register(lambda: loop.call_soon_threadsafe(call.cancel))
        try:
            return await call
        except asyncio.CancelledError:
            if options.cancellation is not None and options.cancellation.is_cancelled:
                raise CallCancelledError() from None
            raise
        finally:
            if unregister is not None:
                unregister()

    return invoke
