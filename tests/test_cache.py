#!/usr/bin/env python3
"""
Unit tests for the TTL cache

Tests cover:
- set/get round trip and lazy expiry
- copy-on-write isolation of stored values
- cache key determinism
- hit/miss accounting (stats and Prometheus counters)
"""
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from irysdune.core.metrics import AggregatorMetrics
from irysdune.shared.cache import PURGE_EVERY_SETS, TTLCache, make_cache_key


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


class TestTTLCache:
    """Test TTLCache behaviour"""

    def test_round_trip(self):
        cache = TTLCache(clock=FakeClock())
        cache.set("k", [1, 2, 3], ttl=10)
        assert cache.get("k") == [1, 2, 3]

    def test_missing_key_is_absent(self):
        assert TTLCache().get("nope") is None

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=10)

        clock.t += 10
        assert cache.get("k") == "v"  # exactly ttl old is still fresh

        clock.t += 1
        assert cache.get("k") is None
        assert len(cache) == 0  # evicted on read

    def test_default_ttl_applies(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl=5, clock=clock)
        cache.set("k", "v")
        clock.t += 6
        assert "k" not in cache

    def test_values_are_not_shared_by_reference(self):
        cache = TTLCache()
        value = {"series": [1]}
        cache.set("k", value)
        value["series"].append(2)
        assert cache.get("k") == {"series": [1]}

        fetched = cache.get("k")
        fetched["series"].append(3)
        assert cache.get("k") == {"series": [1]}

    def test_remove_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.remove("a")
        cache.remove("missing")
        assert cache.get("a") is None
        assert cache.get("b") == 2
        cache.clear()
        assert len(cache) == 0

    def test_purge_expired(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.t += 5
        assert cache.purge_expired() == 1
        assert "long" in cache

    def test_expired_entries_swept_by_later_sets(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("short", 1, ttl=1)
        clock.t += 5
        for i in range(PURGE_EVERY_SETS - 1):
            cache.set(f"k{i}", i, ttl=100)
        assert len(cache) == PURGE_EVERY_SETS - 1
        assert cache.stats()["entries"] == PURGE_EVERY_SETS - 1

    def test_invalid_ttl_rejected(self):
        with pytest.raises(ValueError):
            TTLCache(default_ttl=0)
        with pytest.raises(ValueError):
            TTLCache().set("k", "v", ttl=-1)

    def test_stats_and_metrics(self):
        metrics = AggregatorMetrics()
        cache = TTLCache(metrics=metrics)
        cache.set("k", "v")
        cache.get("k")
        cache.get("other")

        assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1}
        assert metrics.value("cache_lookups_total", {"result": "hit"}) == 1.0
        assert metrics.value("cache_lookups_total", {"result": "miss"}) == 1.0


class TestMakeCacheKey:
    """Test cache key construction"""

    def test_parameter_order_does_not_matter(self):
        a = make_cache_key("onchain-query", {"network": "mainnet", "address": "0xabc", "months": 6})
        b = make_cache_key("onchain-query", {"months": 6, "address": "0xabc", "network": "mainnet"})
        assert a == b

    def test_format(self):
        key = make_cache_key("query-tags", {"tags": ["App-Name:x", "Type:y"], "months": 1})
        assert key == "query-tags:months:1|tags:App-Name:x,Type:y"

    def test_operation_name_is_part_of_key(self):
        assert make_cache_key("a", {"x": 1}) != make_cache_key("b", {"x": 1})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
