"""
tests/test_ttl_cache.py

Tests for the instance-owned TTL cache: lazy expiry, threshold sweeps,
hit/miss accounting.
"""

from core.ttl_cache import TTLCache


def make_cache(clock, ttl=10.0, sweep_threshold=100):
    return TTLCache(name="test-cache", ttl_seconds=ttl, sweep_threshold=sweep_threshold, clock=clock)


class TestTTLCache:
    def test_get_missing_returns_none(self, fake_clock):
        cache = make_cache(fake_clock)
        assert cache.get("nope") is None
        assert cache.stats.misses == 1

    def test_set_then_get(self, fake_clock):
        cache = make_cache(fake_clock)
        cache.set("k", [1, 2])
        assert cache.get("k") == [1, 2]
        assert cache.stats.hits == 1
        assert "k" in cache

    def test_entry_expires_lazily(self, fake_clock):
        cache = make_cache(fake_clock, ttl=10.0)
        cache.set("k", "v")
        fake_clock.advance(9.9)
        assert cache.get("k") == "v"
        fake_clock.advance(0.2)
        assert "k" not in cache
        # still stored until a read discovers it
        assert len(cache) == 1
        assert cache.get("k") is None
        assert len(cache) == 0
        assert cache.stats.evictions == 1

    def test_sweep_only_past_threshold(self, fake_clock):
        cache = make_cache(fake_clock, ttl=1.0, sweep_threshold=3)
        for i in range(3):
            cache.set(f"old-{i}", i)
        fake_clock.advance(5)
        cache.set("new-0", 0)   # 4 entries > 3 → sweep
        assert len(cache) == 1
        assert cache.get("new-0") == 0

    def test_no_sweep_under_threshold(self, fake_clock):
        cache = make_cache(fake_clock, ttl=1.0, sweep_threshold=10)
        cache.set("a", 1)
        fake_clock.advance(5)
        cache.set("b", 2)
        assert len(cache) == 2

    def test_explicit_sweep_returns_count(self, fake_clock):
        cache = make_cache(fake_clock, ttl=1.0)
        cache.set("a", 1)
        cache.set("b", 2)
        fake_clock.advance(2)
        cache.set("c", 3)
        assert cache.sweep() == 2
        assert list(cache.items()) == [("c", 3)]

    def test_values_skip_expired_without_counting(self, fake_clock):
        cache = make_cache(fake_clock, ttl=1.0)
        cache.set("a", 1)
        fake_clock.advance(2)
        cache.set("b", 2)
        assert list(cache.values()) == [2]
        assert cache.stats.hits == 0
        assert cache.stats.misses == 0

    def test_clear(self, fake_clock):
        cache = make_cache(fake_clock)
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    def test_hit_rate(self, fake_clock):
        cache = make_cache(fake_clock)
        assert cache.stats.hit_rate == 0.0
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        assert cache.stats.hit_rate == 0.5

    def test_status(self, fake_clock):
        cache = make_cache(fake_clock)
        cache.set("a", 1)
        status = cache.status()
        assert status["name"] == "test-cache"
        assert status["size"] == 1
        assert status["ttl_seconds"] == 10.0
