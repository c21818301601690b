# tests/test_cache.py
from __future__ import annotations

import fakeredis

from leadgen.cache import (
    NOT_FOUND,
    LookupCache,
    MemoryCache,
    NullCache,
    RedisCache,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _ExplodingBackend:
    def get(self, key):
        raise ConnectionError("backend down")

    def set(self, key, value, ttl):
        raise ConnectionError("backend down")

    def delete(self, key):
        raise ConnectionError("backend down")

    def clear_prefix(self, prefix):
        raise ConnectionError("backend down")


def test_set_then_get_returns_value_and_not_found_sentinel():
    cache = LookupCache(MemoryCache())
    assert cache.get_domain("Acme Corp") is None  # true miss

    cache.set_domain("Acme Corp", "acme.com")
    cache.set_domain("Nowhere LLC", None)

    assert cache.get_domain("Acme Corp") == "acme.com"
    assert cache.get_domain("Nowhere LLC") == NOT_FOUND
    assert cache.get_domain("Unseen Inc") is None


def test_keys_ignore_case_and_whitespace():
    cache = LookupCache(MemoryCache(), prefix="t")
    cache.set_domain("  Acme   Corp ", "acme.com")
    assert cache.get_domain("acme corp") == "acme.com"
    assert cache.key("domain", " Acme  Corp") == "t:domain:acme corp"


def test_memory_cache_expires_entries():
    clock = _Clock()
    cache = LookupCache(MemoryCache(clock=clock), domain_ttl=60, executive_ttl=10)
    cache.set_domain("Acme", "acme.com")
    cache.set_executive("acme.com", "Jane Doe")

    clock.now += 11
    assert cache.get_executive("acme.com") is None
    assert cache.get_domain("Acme") == "acme.com"

    clock.now += 50
    assert cache.get_domain("Acme") is None


def test_null_cache_always_misses():
    cache = LookupCache(NullCache())
    cache.set_domain("Acme", "acme.com")
    assert cache.get_domain("Acme") is None
    assert cache.clear() == 0


def test_backend_errors_are_misses_not_exceptions():
    cache = LookupCache(_ExplodingBackend())
    cache.set_domain("Acme", "acme.com")
    cache.set_executive("acme.com", "Jane Doe")
    assert cache.get_domain("Acme") is None
    assert cache.get_executive("acme.com") is None
    assert cache.clear("domain") == 0


def test_redis_cache_round_trip_with_ttl():
    r = fakeredis.FakeRedis()
    cache = LookupCache(RedisCache(r), prefix="lg", domain_ttl=3600, executive_ttl=120)
    cache.set_domain("Acme", "acme.com")
    cache.set_executive("acme.com", None)

    assert cache.get_domain("Acme") == "acme.com"
    assert cache.get_executive("acme.com") == NOT_FOUND
    assert 0 < r.ttl("lg:domain:acme") <= 3600
    assert 0 < r.ttl("lg:ceo:acme.com") <= 120


def test_redis_cache_clear_by_namespace():
    r = fakeredis.FakeRedis()
    cache = LookupCache(RedisCache(r), prefix="lg")
    cache.set_domain("Acme", "acme.com")
    cache.set_domain("Globex", "globex.com")
    cache.set_executive("acme.com", "Jane Doe")
    r.set("other:key", "keep")

    assert cache.clear("domain") == 2
    assert cache.get_domain("Acme") is None
    assert cache.get_executive("acme.com") == "Jane Doe"

    assert cache.clear() == 1
    assert r.get("other:key") == b"keep"
