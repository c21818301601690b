# leadgen/queueing/redis_conn.py
from __future__ import annotations

from redis import Redis


def get_redis(url: str) -> Redis:
    # IMPORTANT: RQ expects raw bytes; do NOT enable decode_responses.
    return Redis.from_url(url, decode_responses=False)


__all__ = ["get_redis"]
