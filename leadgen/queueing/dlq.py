# leadgen/queueing/dlq.py
"""
Dead-letter queue for pipeline jobs that crashed.

The copy keeps the original call (entry point + job payload) so it can be
inspected or re-enqueued by hand. Nothing consumes the DLQ automatically.
"""

from __future__ import annotations

import logging

from redis import Redis
from rq import Queue
from rq.job import Job as RQJob

log = logging.getLogger(__name__)


def _failure_meta(rq_job: RQJob, err: BaseException | str) -> dict:
    payload = rq_job.args[0] if rq_job.args and isinstance(rq_job.args[0], dict) else {}
    meta = dict(rq_job.meta or {})
    meta.setdefault("lead_id", payload.get("lead_id"))
    meta.update(
        failed_job_id=rq_job.id,
        origin=rq_job.origin,
        task_type=payload.get("task_type"),
        dlq_reason=str(err),
        exc_type=None if isinstance(err, str) else f"{type(err).__module__}.{type(err).__name__}",
    )
    return meta


def push_to_dlq(rq_job: RQJob, *, dlq_name: str, err: BaseException | str, **extra_meta) -> str | None:
    """
    Copy a crashed RQ job into `dlq_name`. Returns the DLQ job id, or None
    when the job already lives in the DLQ or the copy failed.
    """
    if rq_job.origin == dlq_name:
        return None
    try:
        meta = _failure_meta(rq_job, err)
        meta.update(extra_meta)
        copy = Queue(dlq_name, connection=rq_job.connection).enqueue(
            rq_job.func_name,
            *rq_job.args,
            **rq_job.kwargs,
            job_timeout=rq_job.timeout,
            description=f"dlq copy of {rq_job.id}",
            meta=meta,
        )
    except Exception:
        log.exception("dlq copy failed", extra={"rq_id": rq_job.id})
        return None
    log.warning(
        "job moved to dlq",
        extra={"rq_id": rq_job.id, "dlq_id": copy.id, "lead_id": meta.get("lead_id")},
    )
    return copy.id


def list_dlq(redis: Redis, dlq_name: str, *, limit: int = 50) -> list[dict]:
    """Summaries of the oldest `limit` DLQ entries."""
    q = Queue(dlq_name, connection=redis)
    out: list[dict] = []
    for rq_job in q.get_jobs(0, max(limit, 1)):
        meta = rq_job.meta or {}
        out.append(
            {
                "id": rq_job.id,
                "failed_job_id": meta.get("failed_job_id"),
                "origin": meta.get("origin"),
                "task_type": meta.get("task_type"),
                "lead_id": meta.get("lead_id"),
                "reason": meta.get("dlq_reason"),
                "exc_type": meta.get("exc_type"),
            }
        )
    return out


__all__ = ["push_to_dlq", "list_dlq"]
