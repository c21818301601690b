# leadgen/queueing/scheduler.py
"""
Where jobs go once a stage decides to enqueue one.

  - RQScheduler: durable; one RQ queue per task type, delayed jobs via
    Queue.enqueue_in (the worker runs with the RQ scheduler enabled).
  - MemoryScheduler: in-process FIFO used by the inline runner and tests.
    Delays are recorded, not slept.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from redis import Redis
from rq import Queue

from leadgen.config import QueueConfig
from leadgen.queueing.jobs import FIND_DOMAIN, FIND_EMAIL, FIND_EXECUTIVE, Job

log = logging.getLogger(__name__)

# RQ import path of the worker entry point
JOB_FUNC = "leadgen.queueing.tasks.process_job"


class Scheduler(Protocol):
    def enqueue(self, job: Job, *, delay: float = 0.0) -> str: ...


def queue_name_for(task_type: str, cfg: QueueConfig) -> str:
    return {
        FIND_DOMAIN: cfg.domain_queue,
        FIND_EXECUTIVE: cfg.executive_queue,
        FIND_EMAIL: cfg.email_queue,
    }[task_type]


class RQScheduler:
    def __init__(self, redis: Redis, cfg: QueueConfig) -> None:
        self.redis = redis
        self.cfg = cfg
        self._queues: dict[str, Queue] = {}

    def queue(self, task_type: str) -> Queue:
        name = queue_name_for(task_type, self.cfg)
        q = self._queues.get(name)
        if q is None:
            q = Queue(name, connection=self.redis, default_timeout=self.cfg.job_timeout)
            self._queues[name] = q
        return q

    def enqueue(self, job: Job, *, delay: float = 0.0) -> str:
        q = self.queue(job.task_type)
        kwargs = {
            "job_timeout": self.cfg.job_timeout,
            "description": f"{job.task_type} lead={job.lead_id} attempt={job.attempt}",
            "meta": {"lead_id": job.lead_id, "attempt": job.attempt, "job_id": job.job_id},
        }
        if delay > 0:
            rq_job = q.enqueue_in(timedelta(seconds=delay), JOB_FUNC, job.to_dict(), **kwargs)
        else:
            rq_job = q.enqueue(JOB_FUNC, job.to_dict(), **kwargs)
        log.info(
            "enqueued job",
            extra={
                "task_type": job.task_type,
                "lead_id": job.lead_id,
                "attempt": job.attempt,
                "delay": round(delay, 3),
                "rq_id": rq_job.id,
            },
        )
        return rq_job.id


@dataclass(frozen=True)
class ScheduledJob:
    job: Job
    delay: float


class MemoryScheduler:
    def __init__(self) -> None:
        self._pending: deque[ScheduledJob] = deque()
        self.history: list[ScheduledJob] = []

    def enqueue(self, job: Job, *, delay: float = 0.0) -> str:
        item = ScheduledJob(job, float(delay))
        self._pending.append(item)
        self.history.append(item)
        return job.job_id

    def __len__(self) -> int:
        return len(self._pending)

    def pop(self) -> ScheduledJob | None:
        return self._pending.popleft() if self._pending else None

    def enqueued_types(self, lead_id: str | None = None) -> list[str]:
        return [
            s.job.task_type for s in self.history if lead_id is None or s.job.lead_id == lead_id
        ]

    def drain(self, handler: Callable[[Job], object], *, max_jobs: int = 10_000) -> int:
        """Run queued jobs (including ones they enqueue) until empty. Returns jobs run."""
        ran = 0
        while self._pending:
            if ran >= max_jobs:
                raise RuntimeError(f"inline queue did not drain after {max_jobs} jobs")
            item = self._pending.popleft()
            handler(item.job)
            ran += 1
        return ran


__all__ = [
    "JOB_FUNC",
    "Scheduler",
    "RQScheduler",
    "MemoryScheduler",
    "ScheduledJob",
    "queue_name_for",
]
