# leadgen/api/deps.py
from __future__ import annotations

import random
from dataclasses import dataclass, field

from fastapi import Request
from redis import Redis

from leadgen.config import AppConfig
from leadgen.db import LeadStore
from leadgen.queueing.scheduler import Scheduler


@dataclass
class ApiState:
    """What the HTTP layer needs: settings, the lead store and somewhere to enqueue."""

    settings: AppConfig
    store: LeadStore
    scheduler: Scheduler
    redis: Redis | None = None
    rng: random.Random = field(default_factory=random.Random)


def get_state(request: Request) -> ApiState:
    return request.app.state.leadgen


def get_store(request: Request) -> LeadStore:
    return get_state(request).store


__all__ = ["ApiState", "get_state", "get_store"]
