# leadgen/queueing/rate_limit.py
"""
Per-task-type concurrency budget shared by every worker process, plus the
retry backoff math.

A budget is a Redis sorted set under TASK_SEM with one member per holder,
scored by the lease's expiry (Redis server time). Expired members are
swept on every acquire, so a worker killed mid-job loses its slot after
SEM_TTL no matter how busy the other holders keep the key.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from redis import Redis
from redis.exceptions import WatchError

log = logging.getLogger(__name__)

TASK_SEM = "sem:task:{task}"
# Must outlive the longest job (JOB_TIMEOUT_SECONDS).
SEM_TTL = 600


def _server_now(redis: Redis) -> float:
    seconds, micros = redis.time()
    return seconds + micros / 1_000_000


def try_acquire(redis: Redis, key: str, limit: int, *, ttl: int = SEM_TTL) -> str | None:
    """
    Lease one slot under `key` unless `limit` live leases are already held.

    Returns the lease token to pass to release(), or None when saturated.
    """
    token = uuid.uuid4().hex
    while True:
        with redis.pipeline() as p:
            try:
                p.watch(key)
                now = _server_now(p)
                if p.zcount(key, f"({now}", "+inf") >= limit:
                    p.unwatch()
                    return None
                p.multi()
                p.zremrangebyscore(key, "-inf", now)
                p.zadd(key, {token: now + ttl})
                p.expire(key, ttl)
                p.execute()
                return token
            except WatchError:
                continue


def release(redis: Redis, key: str, token: str) -> None:
    """Drop one lease. Unknown or already-expired tokens are a no-op."""
    try:
        redis.zrem(key, token)
    except Exception:
        log.warning("semaphore release failed", extra={"key": key}, exc_info=True)


def in_use(redis: Redis, key: str) -> int:
    """Live (unexpired) leases under `key`."""
    return int(redis.zcount(key, f"({_server_now(redis)}", "+inf"))


def compute_backoff(
    attempt: int,
    *,
    base: float = 1.0,
    cap: float = 60.0,
    jitter: str = "full",
    rng: random.Random | None = None,
) -> float:
    """
    Capped exponential delay `min(cap, base * 2**attempt)` with jitter:
    'full' draws from [0, delay], 'equal' from [delay/2, delay].
    """
    ceiling = min(cap, base * (2 ** max(attempt, 0)))
    floor = ceiling / 2.0 if jitter == "equal" else 0.0
    return (rng or random).uniform(floor, ceiling)


@contextmanager
def task_slot(task_type: str, *, redis: Redis, limit: int) -> Iterator[bool]:
    """
    Try once to take one of `limit` concurrent slots for `task_type`.

    Yields True when a slot is held for the duration of the block, False when
    the type is saturated (caller should defer the job, not wait).
    """
    key = TASK_SEM.format(task=task_type)
    token = try_acquire(redis, key, max(int(limit), 1))
    try:
        yield token is not None
    finally:
        if token is not None:
            release(redis, key, token)


__all__ = [
    "TASK_SEM",
    "SEM_TTL",
    "try_acquire",
    "release",
    "in_use",
    "compute_backoff",
    "task_slot",
]
