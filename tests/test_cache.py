"""Tests for peermap.cache — TTL expiry semantics."""

from peermap.cache import TTLCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_miss_returns_default(self) -> None:
        cache = TTLCache()
        assert cache.get("nope") is None
        assert cache.get("nope", "fallback") == "fallback"

    def test_set_then_get(self) -> None:
        cache = TTLCache()
        cache.set("geo:8.8.8.8", {"country": "US"})
        assert cache.get("geo:8.8.8.8") == {"country": "US"}

    def test_empty_string_is_a_hit(self) -> None:
        """Negative DNS results are stored as '' and must not read as a miss."""
        cache = TTLCache()
        cache.set("dns:192.0.2.1", "")
        assert cache.get("dns:192.0.2.1") == ""
        assert "dns:192.0.2.1" in cache

    def test_entry_expires_after_default_ttl(self) -> None:
        clock = FakeClock()
        cache = TTLCache(default_ttl=60, clock=clock)
        cache.set("k", "v")

        clock.now += 59
        assert cache.get("k") == "v"

        clock.now += 1
        assert cache.get("k") is None
        assert "k" not in cache

    def test_explicit_ttl_overrides_default(self) -> None:
        clock = FakeClock()
        cache = TTLCache(default_ttl=60, clock=clock)
        cache.set("short", 1, ttl=5)
        cache.set("long", 2)

        clock.now += 10
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_last_write_wins(self) -> None:
        cache = TTLCache()
        cache.set("k", "first")
        cache.set("k", "second")
        assert cache.get("k") == "second"

    def test_delete(self) -> None:
        cache = TTLCache()
        cache.set("k", "v")
        cache.delete("k")
        cache.delete("missing")
        assert cache.get("k") is None

    def test_purge_expired(self) -> None:
        clock = FakeClock()
        cache = TTLCache(default_ttl=60, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl=600)

        clock.now += 120
        removed = cache.purge_expired()

        assert removed == 1
        assert len(cache) == 1
        assert cache.get("b") == 2
