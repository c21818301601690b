# leadgen/queueing/jobs.py
"""
Job value type.

A Job is one unit of queued work: one lead, one pipeline stage. Its identity
(job_id, task type, lead id) and payload never change once enqueued; a retry
is the same job with a higher attempt number (see Job.next_attempt).

Wire form is a plain dict (RQ pickles the call arguments; the inline
scheduler keeps the object itself).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from leadgen.exceptions import InvalidJobError

FIND_DOMAIN = "find-domain"
FIND_EXECUTIVE = "find-executive"
FIND_EMAIL = "find-email"

TASK_TYPES = (FIND_DOMAIN, FIND_EXECUTIVE, FIND_EMAIL)
DOWNSTREAM_TASKS = (FIND_EXECUTIVE, FIND_EMAIL)

# Payload keys each task type cannot run without
_REQUIRED: dict[str, tuple[str, ...]] = {
    FIND_DOMAIN: ("company",),
    FIND_EXECUTIVE: ("domain",),
    FIND_EMAIL: ("domain",),
}


@dataclass(frozen=True)
class Job:
    task_type: str
    lead_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    attempt: int = 1
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def next_attempt(self) -> Job:
        return replace(self, attempt=self.attempt + 1)

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "task_type": self.task_type,
            "lead_id": self.lead_id,
            "payload": dict(self.payload),
            "attempt": self.attempt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        if not isinstance(data, dict):
            raise InvalidJobError(f"job must be a mapping, got {type(data).__name__}")
        task_type = data.get("task_type")
        lead_id = data.get("lead_id")
        payload = data.get("payload") or {}
        if task_type not in TASK_TYPES:
            raise InvalidJobError(f"unknown task type: {task_type!r}")
        if not lead_id:
            raise InvalidJobError("job has no lead_id")
        if not isinstance(payload, dict):
            raise InvalidJobError("job payload must be a mapping")
        try:
            attempt = int(data.get("attempt") or 1)
        except (TypeError, ValueError) as exc:
            raise InvalidJobError(f"bad attempt value: {data.get('attempt')!r}") from exc
        job = cls(
            task_type=task_type,
            lead_id=str(lead_id),
            payload=dict(payload),
            attempt=max(attempt, 1),
            job_id=str(data.get("job_id") or uuid.uuid4().hex),
        )
        job.validate()
        return job

    def validate(self) -> None:
        missing = [k for k in _REQUIRED.get(self.task_type, ()) if not self.payload.get(k)]
        if missing:
            raise InvalidJobError(
                f"{self.task_type} job for lead {self.lead_id} missing {', '.join(missing)}"
            )


def domain_job(lead_id: str, company: str, *, user_id: str | None = None) -> Job:
    payload: dict[str, Any] = {"company": company}
    if user_id:
        payload["user_id"] = user_id
    return Job(FIND_DOMAIN, lead_id, payload)


def executive_job(lead_id: str, company: str, domain: str) -> Job:
    return Job(FIND_EXECUTIVE, lead_id, {"company": company, "domain": domain})


def email_job(lead_id: str, domain: str, first_name: str, last_name: str) -> Job:
    return Job(
        FIND_EMAIL,
        lead_id,
        {"domain": domain, "first_name": first_name, "last_name": last_name},
    )


__all__ = [
    "FIND_DOMAIN",
    "FIND_EXECUTIVE",
    "FIND_EMAIL",
    "TASK_TYPES",
    "DOWNSTREAM_TASKS",
    "Job",
    "domain_job",
    "executive_job",
    "email_job",
]
