"""Tests for the geocoding LRU cache."""

from __future__ import annotations

import pytest

from src.services.cache import DEFAULT_MAX_BYTES, LRUCache, encoded_size

PARIS = {"lat": 48.8566, "lon": 2.3522, "displayName": "Paris, Île-de-France, France"}
TOKYO = {"lat": 35.6762, "lon": 139.6503, "displayName": "Tokyo, Japan"}


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return _FakeClock()


# ── Lookups ─────────────────────────────────────────────────────────


class TestLookups:
    def test_stored_coordinates_come_back_unchanged(self):
        cache = LRUCache()
        cache.put("geocode:paris", PARIS)
        assert cache.get("geocode:paris") == PARIS

    def test_unknown_city_is_a_miss(self):
        assert LRUCache().get("geocode:atlantis") is None

    def test_keys_are_compared_exactly(self):
        cache = LRUCache()
        cache.put("geocode:paris", PARIS)
        assert cache.get("geocode:Paris") is None

    def test_second_put_replaces_entry(self):
        cache = LRUCache()
        cache.put("geocode:paris", PARIS)
        cache.put("geocode:paris", TOKYO)
        assert cache.get("geocode:paris") == TOKYO
        assert cache.entry_count == 1
        assert cache.current_bytes == encoded_size(TOKYO)

    def test_invalidate_reports_whether_entry_existed(self):
        cache = LRUCache()
        cache.put("geocode:paris", PARIS)
        assert cache.invalidate("geocode:paris") is True
        assert cache.invalidate("geocode:paris") is False
        assert cache.current_bytes == 0

    def test_clear_empties_everything(self):
        cache = LRUCache()
        cache.put("geocode:paris", PARIS)
        cache.put("geocode:tokyo", TOKYO)
        cache.clear()
        assert (cache.entry_count, cache.current_bytes) == (0, 0)

    def test_has_does_not_count_as_a_read(self):
        cache = LRUCache(max_bytes=10)
        cache.put("a", "111")
        cache.put("b", "222")
        assert cache.has("a")
        cache.put("c", "333")
        assert not cache.has("a")


# ── Size ceiling ────────────────────────────────────────────────────


class TestSizeCeiling:
    def test_encoded_size_is_json_length(self):
        assert encoded_size("aaa") == 5  # '"aaa"'
        assert encoded_size({"lat": 1}) == len('{"lat": 1}')

    def test_least_recently_read_entry_is_evicted(self):
        cache = LRUCache(max_bytes=10)  # room for two 5-byte strings
        cache.put("a", "111")
        cache.put("b", "222")
        cache.get("a")
        cache.put("c", "333")
        assert cache.get("b") is None
        assert cache.get("a") == "111"
        assert cache.get("c") == "333"
        assert cache.current_bytes == 10

    def test_oversized_value_is_not_stored(self):
        cache = LRUCache(max_bytes=10)
        cache.put("huge", "x" * 100)
        assert not cache.has("huge")
        assert cache.current_bytes == 0

    def test_default_ceiling_holds_a_thousand_cities(self):
        cache = LRUCache()
        assert DEFAULT_MAX_BYTES == 1024 * 1024
        for i in range(1_000):
            cache.put(f"geocode:city-{i}", {"lat": 1.0, "lon": 2.0, "displayName": f"City {i}"})
        assert cache.entry_count == 1_000


# ── Expiry ──────────────────────────────────────────────────────────


class TestExpiry:
    def test_entry_expires_after_ttl(self, clock):
        cache = LRUCache(ttl_seconds=60, clock=clock)
        cache.put("geocode:paris", PARIS)

        clock.now += 59
        assert cache.get("geocode:paris") == PARIS

        clock.now += 1
        assert cache.get("geocode:paris") is None
        assert cache.entry_count == 0
        assert cache.current_bytes == 0

    def test_overwrite_restarts_ttl(self, clock):
        cache = LRUCache(ttl_seconds=60, clock=clock)
        cache.put("geocode:paris", PARIS)
        clock.now += 50
        cache.put("geocode:paris", PARIS)
        clock.now += 50
        assert cache.get("geocode:paris") == PARIS

    def test_no_ttl_never_expires(self, clock):
        cache = LRUCache(ttl_seconds=None, clock=clock)
        cache.put("geocode:paris", PARIS)
        clock.now += 10 ** 9
        assert cache.get("geocode:paris") == PARIS
