"""Unit tests for the compute-once Lazy cell."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from callgate_core.runtime.lazy import Lazy


class TestLazy:
    def test_not_initialized_until_get(self):
        calls = []
        lazy = Lazy(lambda: calls.append(1) or "value")

        assert lazy.is_initialized is False
        assert calls == []

        assert lazy.get() == "value"
        assert lazy.is_initialized is True

    def test_initializer_runs_once(self):
        calls = []
        lazy = Lazy(lambda: calls.append(1) or object())

        first = lazy.get()
        second = lazy.get()

        assert first is second
        assert len(calls) == 1

    def test_concurrent_callers_share_one_initialization(self):
        counter = {"calls": 0}
        lock = threading.Lock()

        def slow():
            with lock:
                counter["calls"] += 1
            time.sleep(0.05)
            return object()

        lazy = Lazy(slow)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: lazy.get(), range(16)))

        assert counter["calls"] == 1
        assert all(result is results[0] for result in results)

    def test_failure_is_cached(self):
        """A failing initializer is not retried; every caller sees the error."""
        calls = []

        def failing():
            calls.append(1)
            raise RuntimeError("no credentials")

        lazy = Lazy(failing)

        with pytest.raises(RuntimeError):
            lazy.get()
        with pytest.raises(RuntimeError):
            lazy.get()

        assert len(calls) == 1
        assert lazy.is_initialized is True

    def test_none_result_is_cached(self):
        calls = []
        lazy = Lazy(lambda: calls.append(1))

        assert lazy.get() is None
        assert lazy.get() is None
        assert len(calls) == 1
        assert lazy.is_initialized is True
