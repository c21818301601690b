# leadgen/cache.py
"""
Lookup cache for the two expensive resolvers (domain, executive name).

Backends implement the full CacheBackend interface; NullCache is the
default when no Redis is configured. The cache is advisory: every backend
error is logged and treated as a miss, never propagated.

Values are strings. A resolved "nothing found" is stored as the NOT_FOUND
sentinel, which is distinct from a miss (`None`).
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from typing import Protocol

from redis import Redis

log = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"

DOMAIN_NAMESPACE = "domain"
EXECUTIVE_NAMESPACE = "ceo"


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def clear_prefix(self, prefix: str) -> int: ...


class NullCache:
    """No-op backend: every lookup misses, every write is dropped."""

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str, ttl: int) -> bool:
        return False

    def delete(self, key: str) -> bool:
        return False

    def clear_prefix(self, prefix: str) -> int:
        return 0


class MemoryCache:
    """Process-local TTL cache (single worker / tests)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= self._clock():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> bool:
        with self._lock:
            self._data[key] = (value, self._clock() + max(int(ttl), 0))
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
        return len(doomed)


class RedisCache:
    """Redis-backed cache. Errors are logged and reported as misses."""

    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    def get(self, key: str) -> str | None:
        try:
            raw = self.redis.get(key)
        except Exception as exc:
            log.warning("cache get failed", extra={"key": key, "exc": str(exc)})
            return None
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    def set(self, key: str, value: str, ttl: int) -> bool:
        try:
            self.redis.setex(key, max(int(ttl), 1), value)
            return True
        except Exception as exc:
            log.warning("cache set failed", extra={"key": key, "exc": str(exc)})
            return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self.redis.delete(key))
        except Exception as exc:
            log.warning("cache delete failed", extra={"key": key, "exc": str(exc)})
            return False

    def clear_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            for key in self.redis.scan_iter(match=f"{prefix}*", count=500):
                removed += int(self.redis.delete(key))
        except Exception as exc:
            log.warning("cache clear failed", extra={"prefix": prefix, "exc": str(exc)})
        return removed


def _normalize_key_part(value: str) -> str:
    return re.sub(r"\s+", " ", (value or "").strip().lower())


class LookupCache:
    """
    Typed view over a CacheBackend for resolver results.

    get_* returns:
      - None       → miss (never written, expired, or backend down)
      - NOT_FOUND  → a previous lookup found nothing
      - str        → the cached value
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        prefix: str = "leadgen",
        domain_ttl: int = 7 * 86400,
        executive_ttl: int = 86400,
    ) -> None:
        self.backend: CacheBackend = backend if backend is not None else NullCache()
        self.prefix = prefix
        self.domain_ttl = domain_ttl
        self.executive_ttl = executive_ttl

    def key(self, namespace: str, value: str) -> str:
        return f"{self.prefix}:{namespace}:{_normalize_key_part(value)}"

    def _get(self, key: str) -> str | None:
        try:
            return self.backend.get(key)
        except Exception as exc:
            log.warning("cache backend raised on get", extra={"key": key, "exc": str(exc)})
            return None

    def _set(self, key: str, value: str | None, ttl: int) -> None:
        try:
            self.backend.set(key, value if value else NOT_FOUND, ttl)
        except Exception as exc:
            log.warning("cache backend raised on set", extra={"key": key, "exc": str(exc)})

    # ---- domain (keyed by company) ----

    def get_domain(self, company: str) -> str | None:
        return self._get(self.key(DOMAIN_NAMESPACE, company))

    def set_domain(self, company: str, domain: str | None) -> None:
        self._set(self.key(DOMAIN_NAMESPACE, company), domain, self.domain_ttl)

    # ---- executive (keyed by domain) ----

    def get_executive(self, domain: str) -> str | None:
        return self._get(self.key(EXECUTIVE_NAMESPACE, domain))

    def set_executive(self, domain: str, name: str | None) -> None:
        self._set(self.key(EXECUTIVE_NAMESPACE, domain), name, self.executive_ttl)

    # ---- maintenance ----

    def clear(self, namespace: str | None = None) -> int:
        target = f"{self.prefix}:{namespace}:" if namespace else f"{self.prefix}:"
        try:
            return self.backend.clear_prefix(target)
        except Exception as exc:
            log.warning("cache backend raised on clear", extra={"prefix": target, "exc": str(exc)})
            return 0


__all__ = [
    "NOT_FOUND",
    "DOMAIN_NAMESPACE",
    "EXECUTIVE_NAMESPACE",
    "CacheBackend",
    "NullCache",
    "MemoryCache",
    "RedisCache",
    "LookupCache",
]
