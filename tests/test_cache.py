import pytest

from listings_app.cache import MISSING, CacheEntry, TTLCache


@pytest.fixture
def make_cache(clock):
    def _make(ttl=600, **kw):
        return TTLCache("listing", ttl, clock=clock, **kw), clock

    return _make


def test_value_visible_until_ttl_then_absent(make_cache):
    cache, clock = make_cache(ttl=10)
    cache.set("k", "v")
    clock.advance(9.5)
    assert cache.get("k") == "v"
    clock.advance(0.5)
    assert cache.get("k") is MISSING


def test_ten_minute_entry_scenario(make_cache):
    cache, clock = make_cache(ttl=600)
    cache.set("listing:42", {"title": "A"})
    clock.advance(9 * 60)
    assert cache.get("listing:42") == {"title": "A"}
    clock.advance(2 * 60)
    assert cache.get("listing:42") is MISSING


def test_expired_entry_is_evicted_on_read(make_cache):
    cache, clock = make_cache(ttl=5)
    cache.set("k", 1)
    clock.advance(6)
    assert len(cache) == 1
    assert cache.get("k") is MISSING
    assert len(cache) == 0


def test_none_is_a_cacheable_value(make_cache):
    cache, _ = make_cache()
    cache.set("listing::missing", None)
    assert cache.get("listing::missing") is None
    assert cache.get("listing::other") is MISSING
    assert "listing::missing" in cache


def test_per_entry_ttl_overrides_default(make_cache):
    cache, clock = make_cache(ttl=600)
    cache.set("short", 1, ttl=30)
    cache.set("zero", 2, ttl=0)
    cache.set("default", 3)
    assert cache.get("zero") is MISSING
    clock.advance(31)
    assert cache.get("short") is MISSING
    assert cache.get("default") == 3


def test_set_overwrites_and_restarts_ttl(make_cache):
    cache, clock = make_cache(ttl=10)
    cache.set("k", "old")
    clock.advance(8)
    cache.set("k", "new")
    clock.advance(8)
    assert cache.get("k") == "new"


def test_delete_and_clear(make_cache):
    cache, _ = make_cache()
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    cache.delete("never-set")
    assert cache.get("a") is MISSING
    assert cache.get("b") == 2
    cache.clear()
    assert len(cache) == 0


def test_cleanup_evicts_only_expired_and_is_idempotent(make_cache):
    cache, clock = make_cache(ttl=10)
    cache.set("old", 1)
    clock.advance(5)
    cache.set("young", 2)
    clock.advance(6)
    assert cache.cleanup() == 1
    state = len(cache)
    assert cache.cleanup() == 0
    assert len(cache) == state == 1
    assert cache.get("young") == 2


def test_max_items_prefers_expired_then_oldest(make_cache):
    cache, clock = make_cache(ttl=10, max_items=2)
    cache.set("a", 1, ttl=1)
    cache.set("b", 2)
    clock.advance(2)
    cache.set("c", 3)  # "a" is expired and goes first
    assert cache.get("b") == 2 and cache.get("c") == 3
    cache.set("d", 4)  # nothing expired: oldest ("b") goes
    assert cache.get("b") is MISSING
    assert cache.get("c") == 3 and cache.get("d") == 4


def test_negative_default_ttl_rejected():
    with pytest.raises(ValueError):
        TTLCache("bad", -1)


def test_entry_is_dead_from_its_expiry_instant():
    entry = CacheEntry(value="v", created_at=0.0, expires_at=10.0)
    assert not entry.is_expired(9.99)
    assert entry.is_expired(10.0)
