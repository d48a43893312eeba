"""
Compute-once cell shared across threads.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class Lazy(Generic[T]):
    """Runs its initializer exactly once, under a lock, and caches the outcome.

    A failing initializer is not retried: the exception is cached and
    re-raised to every caller of get().
    """

    def __init__(self, initializer: Callable[[], T]):
        self._initializer: Callable[[], T] | None = initializer
        self._lock = threading.Lock()
        self._done = False
        self._value: T | None = None
        self._error: BaseException | None = None

    @property
    def is_initialized(self) -> bool:
        return self._done

    def get(self) -> T:
        if not self._done:
            with self._lock:
                if not self._done:
                    try:
                        self._value = self._initializer()
                    except BaseException as exc:
                        self._error = exc
                        raise
                    finally:
                        self._initializer = None
                        self._done = True
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]
