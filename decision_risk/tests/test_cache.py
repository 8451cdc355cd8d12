"""Tests for the single-flight fingerprint cache."""

import threading
import time
import pytest

from decision_risk.core.cache import FingerprintCache


class TestFingerprintCache:
    """Test caching, single flight and eviction."""

    def test_computes_once(self):
        """A second request is a cache hit."""
        cache = FingerprintCache()
        calls = []

        def compute():
            calls.append(1)
            return "result"

        assert cache.get_or_compute("fp", compute) == "result"
        assert cache.get_or_compute("fp", compute) == "result"
        assert len(calls) == 1
        assert cache.hits == 1
        assert cache.misses == 1

    def test_single_flight(self):
        """Concurrent requests for one fingerprint share a computation."""
        cache = FingerprintCache()
        calls = []
        lock = threading.Lock()

        def compute():
            with lock:
                calls.append(1)
            time.sleep(0.2)
            return object()

        results = []

        def request():
            results.append(cache.get_or_compute("fp", compute))

        threads = [threading.Thread(target=request) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(calls) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)

    def test_failure_is_evicted(self):
        """A failed computation is not cached and can be retried."""
        cache = FingerprintCache()

        def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            cache.get_or_compute("fp", fail)

        assert "fp" not in cache
        assert cache.get_or_compute("fp", lambda: 42) == 42

    def test_waiters_see_failure(self):
        """Callers waiting on a failing computation receive its error."""
        cache = FingerprintCache()
        started = threading.Event()
        errors = []

        def slow_fail():
            started.set()
            time.sleep(0.2)
            raise RuntimeError("boom")

        def owner():
            try:
                cache.get_or_compute("fp", slow_fail)
            except RuntimeError as e:
                errors.append(e)

        def waiter():
            started.wait()
            try:
                cache.get_or_compute("fp", lambda: "never")
            except RuntimeError as e:
                errors.append(e)

        threads = [threading.Thread(target=owner), threading.Thread(target=waiter)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(errors) == 2

    def test_lru_eviction(self):
        """Only max_entries completed results are retained."""
        cache = FingerprintCache(max_entries=2)
        cache.get_or_compute("a", lambda: 1)
        cache.get_or_compute("b", lambda: 2)
        cache.get_or_compute("a", lambda: 1)
        cache.get_or_compute("c", lambda: 3)

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2

    def test_get_never_blocks(self):
        """get returns None for unknown fingerprints."""
        cache = FingerprintCache()
        assert cache.get("missing") is None
        cache.get_or_compute("fp", lambda: "value")
        assert cache.get("fp") == "value"

    def test_clear(self):
        """clear drops every entry."""
        cache = FingerprintCache()
        cache.get_or_compute("fp", lambda: 1)
        cache.clear()
        assert len(cache) == 0
