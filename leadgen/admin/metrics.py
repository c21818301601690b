# leadgen/admin/metrics.py
from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass
from typing import Any

from redis import Redis
from rq import Queue, Worker

from leadgen.config import QueueConfig


@dataclass
class QueueStats:
    name: str
    queued: int
    started: int
    failed: int
    scheduled: int


@dataclass
class WorkerStats:
    name: str
    queues: list[str]
    state: str
    last_heartbeat: dt.datetime | None


def queue_names(cfg: QueueConfig) -> list[str]:
    return [cfg.domain_queue, cfg.executive_queue, cfg.email_queue, cfg.dlq_name]


def _count_queue(name: str, redis_conn: Redis | None) -> QueueStats:
    if redis_conn is None:
        return QueueStats(name=name, queued=0, started=0, failed=0, scheduled=0)
    q = Queue(name, connection=redis_conn)
    try:
        return QueueStats(
            name=name,
            queued=q.count,
            started=q.started_job_registry.count,
            failed=q.failed_job_registry.count,
            scheduled=q.scheduled_job_registry.count,
        )
    except Exception:
        return QueueStats(name=name, queued=0, started=0, failed=0, scheduled=0)


def _describe_worker(w: Worker) -> WorkerStats:
    try:
        return WorkerStats(
            name=w.name,
            queues=[q.name for q in w.queues],
            state=str(w.get_state()),
            last_heartbeat=w.last_heartbeat,
        )
    except Exception:
        return WorkerStats(name=w.name, queues=[], state="unknown", last_heartbeat=None)


def get_queue_stats(
    redis_conn: Redis | None, cfg: QueueConfig
) -> tuple[list[QueueStats], list[WorkerStats]]:
    """
    Per-queue counts for the pipeline queues and the DLQ, plus registered
    workers. Redis being absent or down yields zeroed counts and no workers;
    status polling must keep working.
    """
    queues = [_count_queue(name, redis_conn) for name in queue_names(cfg)]
    if redis_conn is None:
        return queues, []
    try:
        workers = [_describe_worker(w) for w in Worker.all(connection=redis_conn)]
    except Exception:
        # Worker.all() fails when Redis is down
        workers = []
    return queues, workers


def queue_status_payload(redis_conn: Redis | None, cfg: QueueConfig) -> dict[str, Any]:
    """JSON-ready queue/worker summary for the API and CLI."""
    queues, workers = get_queue_stats(redis_conn, cfg)
    return {
        "queues": {q.name: asdict(q) for q in queues},
        "workers": [
            {
                **asdict(w),
                "last_heartbeat": w.last_heartbeat.isoformat() if w.last_heartbeat else None,
            }
            for w in workers
        ],
        "timestamp": dt.datetime.now(dt.UTC).isoformat(),
    }


__all__ = ["QueueStats", "WorkerStats", "get_queue_stats", "queue_status_payload", "queue_names"]
