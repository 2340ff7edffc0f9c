"""Unit tests for deskmacro.engine.element_cache."""

from __future__ import annotations

import threading

import pytest

from deskmacro.engine.element_cache import ElementCache


class TestElementCache:
    """Keys are sequential, lookups refresh recency, the oldest entry is evicted."""

    def test_keys_are_sequential(self):
        cache = ElementCache()
        assert cache.add("a") == "e1"
        assert cache.add("b") == "e2"
        assert cache.get("e1") == "a"

    def test_missing_key(self):
        assert ElementCache().get("e99") is None

    def test_evicts_least_recently_used(self):
        cache = ElementCache(capacity=2)
        cache.add("a")
        cache.add("b")
        cache.get("e1")
        cache.add("c")

        assert "e1" in cache
        assert "e2" not in cache
        assert len(cache) == 2

    def test_keys_not_reused_after_clear(self):
        cache = ElementCache()
        cache.add("a")
        cache.clear()
        assert len(cache) == 0
        assert cache.add("b") == "e2"

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ElementCache(capacity=0)

    def test_concurrent_adds_get_unique_keys(self):
        cache = ElementCache(capacity=10_000)
        keys: list[str] = []
        lock = threading.Lock()

        def worker() -> None:
            local = [cache.add(object()) for _ in range(200)]
            with lock:
                keys.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(keys)) == 1600
