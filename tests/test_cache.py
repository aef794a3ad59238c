# tests/test_cache.py
"""
Tests for AnalysisCache and AnalysisConfig.
"""

import threading

import pytest

from nullcontracts.analysis_cache import AnalysisCache
from nullcontracts.config import DEFAULT_CONSTRAINT_METHODS, AnalysisConfig


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestAnalysisCache:

    def test_hit_returns_cached_value(self, clock):
        cache = AnalysisCache(clock=clock)
        builds = []
        first = cache.get_or_build("m", lambda: builds.append(1) or object())
        second = cache.get_or_build("m", lambda: builds.append(1) or object())
        assert first is second
        assert builds == [1]
        assert cache.stats == {"hits": 1, "misses": 1, "evictions": 0}

    def test_expiry(self, clock):
        cache = AnalysisCache(retention_seconds=20.0, clock=clock)
        first = cache.get_or_build("m", object)
        clock.now = 25.0
        assert "m" in cache
        second = cache.get_or_build("m", object)
        assert first is not second

    def test_reads_keep_entries_alive(self, clock):
        cache = AnalysisCache(retention_seconds=20.0, clock=clock)
        first = cache.get_or_build("m", object)
        for step in (15.0, 30.0, 45.0):
            clock.now = step
            assert cache.get_or_build("m", object) is first

    def test_lru_eviction(self, clock):
        cache = AnalysisCache(max_entries=2, clock=clock)
        cache.get_or_build("a", object)
        cache.get_or_build("b", object)
        cache.get_or_build("a", object)
        cache.get_or_build("c", object)
        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2
        assert cache.stats["evictions"] == 1

    def test_clear(self, clock):
        cache = AnalysisCache(clock=clock)
        cache.get_or_build("a", object)
        cache.clear()
        assert len(cache) == 0

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            AnalysisCache(max_entries=0)

    def test_concurrent_callers_build_once(self):
        cache = AnalysisCache()
        builds = []
        barrier = threading.Barrier(8)
        results = []

        def build():
            builds.append(threading.get_ident())
            return object()

        def worker():
            barrier.wait()
            results.append(cache.get_or_build("shared", build))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(builds) == 1
        assert all(r is results[0] for r in results)


class TestAnalysisConfig:

    def test_defaults(self):
        config = AnalysisConfig()
        assert config.cache_retention_seconds == 20.0
        assert config.constraint_methods == DEFAULT_CONSTRAINT_METHODS

    def test_from_mapping(self):
        config = AnalysisConfig.from_mapping({
            "allowlist_path": "allow.txt",
            "cache_retention_seconds": "5",
            "cache_max_entries": "3",
            "constraint_methods": ["Guard.NotNull"],
            "unknown": 1,
            "cache_retention_seconds_typo": None,
        })
        assert config.allowlist_path == "allow.txt"
        assert config.cache_retention_seconds == 5.0
        assert config.cache_max_entries == 3
        assert config.constraint_methods == frozenset({"Guard.NotNull"})

    def test_none_values_keep_defaults(self):
        config = AnalysisConfig.from_mapping({"allowlist_path": None})
        assert config.allowlist_path is None
