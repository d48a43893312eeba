"""
Cooperative cancellation shared between threads and event loops.

A CancellationToken fires at most once. Callers poll it, block on it, or
register callbacks; waiters built with with_cancellation stop waiting when it
fires, but the operation they were waiting on keeps running.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable, TypeVar

from .errors import CallCancelledError

T = TypeVar("T")


def _noop() -> None:
    return None


class CancellationToken:
    """Thread-safe, fire-once cancellation signal.

    Usage:
        token = CancellationToken()
        unregister = token.register(lambda: call.cancel())
        ...
        token.cancel()
    """

    def __init__(self, can_be_cancelled: bool = True):
        self._can_be_cancelled = can_be_cancelled
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_id = 0

    @classmethod
    def none(cls) -> "CancellationToken":
        """Return the shared token that never fires."""
        return NO_CANCELLATION

    @classmethod
    def any(cls, *tokens: "CancellationToken | None") -> "CancellationToken | None":
        """Return a token that fires when any of the given tokens fires.

        Tokens that are None or can never fire are ignored. A single
        remaining token is returned as-is rather than wrapped. Nothing is
        registered on the source tokens until the combined token is
        registered on or waited for.
        """
        live = [t for t in tokens if t is not None and t.can_be_cancelled]
        if not live:
            return None
        if len(live) == 1:
            return live[0]
        return LinkedCancellationToken(live)

    @property
    def can_be_cancelled(self) -> bool:
        return self._can_be_cancelled

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Fire the token and run registered callbacks on this thread."""
        if not self._can_be_cancelled:
            return
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run callback when the token fires.

        If the token has already fired, the callback runs immediately.

        Returns:
            A function that unregisters the callback.
        """
        if not self._can_be_cancelled:
            return _noop
        with self._lock:
            if not self._event.is_set():
                handle = self._next_id
                self._next_id += 1
                self._callbacks[handle] = callback

                def unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(handle, None)

                return unregister
        callback()
        return _noop

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise CallCancelledError()

    def wait(self, timeout: float | None = None) -> bool:
        """Block the calling thread until the token fires or timeout elapses.

        Returns:
            True if the token fired.
        """
        if not self._can_be_cancelled:
            if timeout is None:
                raise ValueError("Waiting forever on a token that can never fire")
            self._event.wait(timeout)
            return False
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        if not self._can_be_cancelled:
            return "CancellationToken.none()"
        return f"CancellationToken(cancelled={self.is_cancelled})"


class LinkedCancellationToken(CancellationToken):
    """Token that fires when it or any of its source tokens fires.

    Source tokens are only observed, never modified: callbacks go onto the
    sources when registered here and come off again on unregister.
    """

    def __init__(self, sources: list[CancellationToken]):
        super().__init__()
        self._sources = tuple(sources)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set() or any(source.is_cancelled for source in self._sources)

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        guard = threading.Lock()
        fired = False

        def once() -> None:
            nonlocal fired
            with guard:
                if fired:
                    return
                fired = True
            callback()

        handles = [super().register(once)]
        handles.extend(source.register(once) for source in self._sources)

        def unregister() -> None:
            for handle in handles:
                handle()

        return unregister

    def wait(self, timeout: float | None = None) -> bool:
        if self.is_cancelled:
            return True
        event = threading.Event()
        unregister = self.register(event.set)
        try:
            return event.wait(timeout)
        finally:
            unregister()

    def __repr__(self) -> str:
        return f"LinkedCancellationToken(sources={len(self._sources)}, cancelled={self.is_cancelled})"


NO_CANCELLATION = CancellationToken(can_be_cancelled=False)


async def with_cancellation(
    awaitable: Awaitable[T],
    cancellation: CancellationToken | None,
) -> T:
    """Await awaitable, giving up early if cancellation fires.

    Giving up does not cancel the awaitable: only this waiter stops waiting,
    and CallCancelledError is raised. If both complete together the
    awaitable's outcome wins.
    """
    if cancellation is None or not cancellation.can_be_cancelled:
        return await awaitable

    loop = asyncio.get_running_loop()
    operation = asyncio.ensure_future(awaitable)
    cancelled: asyncio.Future[None] = loop.create_future()

    def _mark_cancelled() -> None:
        if not cancelled.done():
            cancelled.set_result(None)

    def _on_cancel() -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(_mark_cancelled)

    unregister = cancellation.register(_on_cancel)
    try:
        await asyncio.wait({operation, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        unregister()
        if not cancelled.done():
            cancelled.cancel()

    if operation.done():
        return operation.result()
    # Nobody awaits the abandoned operation; retrieve its outcome so asyncio
    # does not report it as never retrieved.
    operation.add_done_callback(lambda f: f.cancelled() or f.exception())
    raise CallCancelledError()
