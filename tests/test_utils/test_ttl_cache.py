"""Tests for the TTL lookup cache."""

import pytest

from src.utils.ttl_cache import TTLCache, make_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_get_and_expiry(self) -> None:
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)

        clock.now = 9.9
        assert cache.get("a") == 1
        clock.now = 10.0
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self) -> None:
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2)

        clock.now = 5
        assert cache.get("short", "gone") == "gone"
        assert cache.get("long") == 2

    def test_oldest_entry_evicted_when_full(self) -> None:
        cache = TTLCache(max_entries=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_get_or_set_computes_once(self) -> None:
        cache = TTLCache(clock=FakeClock())
        calls = []

        def factory():
            calls.append(1)
            return None

        assert cache.get_or_set("k", factory) is None
        assert cache.get_or_set("k", factory) is None
        assert len(calls) == 1

    def test_clear(self) -> None:
        cache = TTLCache(clock=FakeClock())
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"max_entries": 0}])
    def test_invalid_configuration(self, kwargs) -> None:
        with pytest.raises(ValueError):
            TTLCache(**kwargs)


class TestMakeKey:
    def test_param_order_irrelevant(self) -> None:
        assert make_key("x", a=1, b=2) == make_key("x", b=2, a=1)

    def test_prefix_and_values_distinguish(self) -> None:
        assert make_key("x", a=1) != make_key("y", a=1)
        assert make_key("x", a=1) != make_key("x", a=2)
