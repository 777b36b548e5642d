import pytest

from streamflow.utils.cache_utils import TTLCache, TTLClass, build_resolution_cache

TTLS = {TTLClass.SHORT: 1_000, TTLClass.VERIFIED: 10_000}


@pytest.fixture
def cache(clock):
    return TTLCache("test", ttl_ms=TTLS, max_entries=3, clock=clock)


def test_get_returns_live_entry(cache):
    cache.set("a", "value")

    entry = cache.get("a")

    assert entry is not None
    assert entry.value == "value"


def test_missing_key_returns_none(cache):
    assert cache.get("nope") is None


def test_expired_entry_is_evicted_on_read(cache, clock):
    cache.set("a", "value")
    clock.advance(1.5)

    assert cache.get("a") is None
    assert len(cache) == 0


def test_second_serve_promotes_to_verified_ttl(cache, clock):
    entry = cache.set("a", "value")
    assert entry.ttl_class == TTLClass.SHORT
    assert not entry.verified

    entry = cache.get("a")
    assert entry.verified
    assert entry.ttl_class == TTLClass.VERIFIED

    # Past the short TTL but well inside the verified one.
    clock.advance(5)
    assert cache.get("a") is not None


def test_peek_does_not_count_a_serve(cache, clock):
    cache.set("a", "value")

    assert cache.peek("a").value == "value"
    assert not cache.peek("a").verified

    clock.advance(1.5)
    assert cache.peek("a") is None


def test_restoring_a_live_entry_keeps_its_serve_count(cache):
    cache.set("a", "first")
    entry = cache.set("a", "second")

    assert entry.value == "second"
    assert entry.hits == 2
    assert entry.verified


def test_restoring_an_expired_entry_starts_over(cache, clock):
    cache.set("a", "first")
    clock.advance(2)

    entry = cache.set("a", "second")
    assert entry.hits == 1
    assert not entry.verified


def test_least_recently_used_entry_is_evicted_when_full(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    cache.get("a")

    cache.set("d", 4)

    assert len(cache) == 3
    assert cache.peek("b") is None
    assert cache.peek("a") is not None
    assert cache.peek("d") is not None


def test_sweep_drops_only_expired_entries(cache, clock):
    cache.set("old", 1)
    clock.advance(0.8)
    cache.set("new", 2)
    clock.advance(0.5)

    assert cache.sweep() == 1
    assert cache.peek("old") is None
    assert cache.peek("new") is not None


def test_delete_and_clear(cache):
    cache.set("a", 1)
    cache.set("b", 2)

    cache.delete("a")
    assert cache.peek("a") is None

    cache.clear()
    assert len(cache) == 0


def test_resolution_cache_uses_configured_ttls(clock):
    cache = build_resolution_cache(clock=clock)

    assert cache.ttl_seconds(TTLClass.SHORT) == 300
    assert cache.ttl_seconds(TTLClass.VERIFIED) == 3600
