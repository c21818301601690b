# leadgen/queueing/worker.py
from __future__ import annotations

import importlib
import logging
import os
from collections.abc import Sequence

from rq import Queue
from rq import SimpleWorker as RQSimpleWorker
from rq import Worker as RQWorker

from leadgen.config import AppConfig, load_settings
from leadgen.queueing import tasks as _tasks  # noqa: F401  (ensure task module is imported)
from leadgen.queueing.dlq import push_to_dlq
from leadgen.queueing.redis_conn import get_redis

log = logging.getLogger(__name__)


def make_dlq_handler(dlq_name: str):
    """
    RQ exception handler: copy crashed jobs to the DLQ.

    Retryable provider errors never reach RQ (the job runner reschedules
    them itself), so anything arriving here is a crash worth keeping.
    """

    def _dlq_exception_handler(job, exc_type, exc_value, tb):
        try:
            if getattr(job, "origin", "") == dlq_name:
                return True
            push_to_dlq(job, dlq_name=dlq_name, err=exc_value)
        except Exception:  # noqa: BLE001
            log.exception("DLQ exception handler failed")
        # continue to RQ's default handling (failed registry)
        return True

    return _dlq_exception_handler


def queue_names(cfg: AppConfig, override: Sequence[str] | None = None) -> list[str]:
    """CLI override, then RQ_QUEUE (cfg.queue.worker_queues), then every pipeline queue."""
    if override:
        return [q.strip() for q in override if q.strip()]
    if cfg.queue.worker_queues:
        return list(cfg.queue.worker_queues)
    return [cfg.queue.domain_queue, cfg.queue.executive_queue, cfg.queue.email_queue]


def _select_worker_cls(cfg: AppConfig):
    """
    Windows: always SimpleWorker (forking Worker uses os.wait4 which doesn't exist on Windows).
    Non-Windows: honor RQ_WORKER_CLASS if provided; else use Worker.
    """
    if os.name == "nt":
        return RQSimpleWorker

    if cfg.queue.worker_class:
        mod, name = cfg.queue.worker_class.rsplit(".", 1)
        return getattr(importlib.import_module(mod), name)
    return RQWorker


def run(queues: Sequence[str] | None = None, *, burst: bool = False) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    cfg = load_settings()
    r = get_redis(cfg.queue.redis_url)
    names = queue_names(cfg, queues)
    rq_queues = [Queue(name, connection=r) for name in names]

    worker_cls = _select_worker_cls(cfg)
    log.info("Worker class: %s.%s", worker_cls.__module__, worker_cls.__name__)
    log.info("Queues: %s", ", ".join(names))

    w = worker_cls(
        rq_queues,
        connection=r,
        exception_handlers=[make_dlq_handler(cfg.queue.dlq_name)],
    )

    # The scheduler moves delayed (jittered / backoff) jobs onto their queues.
    w.work(with_scheduler=True, burst=burst)


if __name__ == "__main__":
    run()
