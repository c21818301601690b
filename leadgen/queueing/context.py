# leadgen/queueing/context.py
"""
PipelineContext: everything a stage handler needs, built once per worker
job (or once per inline run) and passed in explicitly.

    ctx = build_context(load_settings())              # Redis + RQ
    ctx = build_context(settings, inline=True)        # memory cache + MemoryScheduler

Resolver collaborators (search client, model extractor, verifier) can be
injected; tests pass small fakes.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from redis import Redis

from leadgen.cache import LookupCache, MemoryCache, NullCache, RedisCache
from leadgen.config import AppConfig, load_settings
from leadgen.db import LeadStore
from leadgen.extract.executive import ExecutiveExtractor
from leadgen.fetch.client import SearchClient
from leadgen.queueing.jobs import FIND_DOMAIN, FIND_EMAIL, FIND_EXECUTIVE
from leadgen.queueing.redis_conn import get_redis
from leadgen.queueing.scheduler import MemoryScheduler, RQScheduler, Scheduler
from leadgen.resolve.domain import DomainResolver, SearchLike
from leadgen.resolve.email import EmailResolver, VerifierLike
from leadgen.resolve.executive import ExecutiveResolver, ExtractorLike
from leadgen.verify.provider import VerifierClient

log = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    settings: AppConfig
    store: LeadStore
    cache: LookupCache
    scheduler: Scheduler
    domain_resolver: DomainResolver
    executive_resolver: ExecutiveResolver
    email_resolver: EmailResolver
    redis: Redis | None = None
    rng: random.Random = field(default_factory=random.Random)
    _closers: list[Callable[[], None]] = field(default_factory=list, repr=False)

    def max_attempts(self, task_type: str) -> int:
        r = self.settings.retry
        return {
            FIND_DOMAIN: r.domain_max_attempts,
            FIND_EXECUTIVE: r.executive_max_attempts,
            FIND_EMAIL: r.email_max_attempts,
        }[task_type]

    def concurrency_limit(self, task_type: str) -> int:
        c = self.settings.concurrency
        return {
            FIND_DOMAIN: c.domain,
            FIND_EXECUTIVE: c.executive,
            FIND_EMAIL: c.email,
        }[task_type]

    def downstream_stages(self) -> tuple[str, ...]:
        stages = [FIND_EXECUTIVE]
        if self.settings.scheduling.email_enrichment_enabled:
            stages.append(FIND_EMAIL)
        return tuple(stages)

    def downstream_jitter(self) -> float:
        return self.rng.uniform(0.0, max(self.settings.scheduling.downstream_jitter_seconds, 0.0))

    def close(self) -> None:
        for fn in self._closers:
            try:
                fn()
            except Exception:
                log.warning("context close hook failed", exc_info=True)
        self._closers.clear()


def build_context(
    settings: AppConfig | None = None,
    *,
    inline: bool = False,
    redis: Redis | None = None,
    scheduler: Scheduler | None = None,
    search: SearchLike | None = None,
    extractor: ExtractorLike | None = None,
    verifier: VerifierLike | None = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> PipelineContext:
    settings = settings or load_settings()
    closers: list[Callable[[], None]] = []

    if inline:
        cache_backend = MemoryCache() if settings.cache.enabled else NullCache()
        scheduler = scheduler or MemoryScheduler()
    else:
        redis = redis if redis is not None else get_redis(settings.queue.redis_url)
        cache_backend = RedisCache(redis) if settings.cache.enabled else NullCache()
        scheduler = scheduler or RQScheduler(redis, settings.queue)

    cache = LookupCache(
        cache_backend,
        prefix=settings.cache.prefix,
        domain_ttl=settings.cache.domain_ttl_seconds,
        executive_ttl=settings.cache.executive_ttl_seconds,
    )

    if search is None:
        client = SearchClient(settings.search)
        closers.append(client.close)
        search = client
    if extractor is None:
        extractor = ExecutiveExtractor(settings.llm)
    if verifier is None:
        vclient = VerifierClient(settings.verifier)
        closers.append(vclient.close)
        verifier = vclient

    store = LeadStore(settings.db.path)

    return PipelineContext(
        settings=settings,
        store=store,
        cache=cache,
        scheduler=scheduler,
        domain_resolver=DomainResolver(search),
        executive_resolver=ExecutiveResolver(
            search,
            extractor,
            query_delay_seconds=settings.search.query_delay_seconds,
            sleep=sleep,
        ),
        email_resolver=EmailResolver(
            verifier,
            delay_seconds=settings.verifier.delay_seconds,
            sleep=sleep,
        ),
        redis=redis,
        rng=rng or random.Random(),
        _closers=closers,
    )


__all__ = ["PipelineContext", "build_context"]
