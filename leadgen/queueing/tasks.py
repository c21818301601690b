# leadgen/queueing/tasks.py
"""
Stage handlers and the job runner.

run_job(ctx, job) executes one stage for one lead and applies the resulting
transition (see transitions.py). process_job(payload) is the RQ entry point:
it builds a fresh PipelineContext, takes a per-task-type concurrency slot
and calls run_job.

Failure policy:
  - RetryableError (provider, rate limit, persistence): re-enqueue the same
    job with attempt+1 after an equal-jitter exponential backoff; once the
    stage's max attempts are used up the stage is failed and the job dropped.
  - InvalidJobError: not retried; the lead (if any) is failed.
  - anything else: the stage is failed and the exception re-raised so RQ
    records it and the worker's handler copies the job to the DLQ.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from leadgen.cache import NOT_FOUND
from leadgen.config import load_settings
from leadgen.db import Lead, StageResult
from leadgen.exceptions import InvalidJobError, RetryableError
from leadgen.ingest.normalize import normalize_name_parts
from leadgen.queueing.context import PipelineContext, build_context
from leadgen.queueing.jobs import (
    FIND_DOMAIN,
    FIND_EMAIL,
    FIND_EXECUTIVE,
    Job,
    domain_job,
    email_job,
    executive_job,
)
from leadgen.queueing.rate_limit import compute_backoff, task_slot
from leadgen.queueing.scheduler import Scheduler
from leadgen.queueing.transitions import Outcome, next_action

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageOutcome:
    outcome: Outcome
    domain: str | None = None
    result: StageResult | None = None


# -----------------------------
# Enqueue helpers
# -----------------------------


def enqueue_domain_job(
    scheduler: Scheduler,
    lead_id: str,
    company: str,
    *,
    jitter_seconds: float = 5.0,
    user_id: str | None = None,
    rng: random.Random | None = None,
) -> str:
    """Entry into the pipeline: one find-domain job with 0..jitter seconds delay."""
    delay = (rng or random).uniform(0.0, max(jitter_seconds, 0.0))
    return scheduler.enqueue(domain_job(lead_id, company, user_id=user_id), delay=delay)


def _downstream_job(lead: Lead, stage: str, domain: str) -> Job | None:
    if stage == FIND_EXECUTIVE:
        return executive_job(lead.id, lead.company, domain)
    if stage == FIND_EMAIL:
        first, last = normalize_name_parts(lead.full_name)
        return email_job(lead.id, domain, first, last)
    return None


def _dispatch_downstream(ctx: PipelineContext, lead: Lead, domain: str) -> int:
    """
    Open the downstream stages on the lead and enqueue one job per open
    stage. Stages are recorded before their jobs exist so a fast downstream
    job always finds its stage open.
    """
    open_stages = ctx.store.begin_stages(lead.id, ctx.downstream_stages())
    if not open_stages:
        # Lead already terminal (or lost its domain row); nothing to do.
        return 0
    n = 0
    for stage in open_stages:
        job = _downstream_job(lead, stage, domain)
        if job is None:
            log.warning("unknown pending stage", extra={"lead_id": lead.id, "stage": stage})
            continue
        ctx.scheduler.enqueue(job, delay=ctx.downstream_jitter())
        n += 1
    return n


# -----------------------------
# Stage handlers
# -----------------------------


def _load_lead(ctx: PipelineContext, job: Job) -> Lead:
    lead = ctx.store.get_lead(job.lead_id)
    if lead is None:
        raise InvalidJobError(f"lead {job.lead_id} does not exist")
    return lead


def handle_find_domain(ctx: PipelineContext, job: Job, lead: Lead) -> StageOutcome | None:
    if lead.domain:
        # Redelivery or manual re-trigger: never resolve again, never overwrite.
        log.info("domain already set; re-dispatching", extra={"lead_id": lead.id})
        _dispatch_downstream(ctx, lead, lead.domain)
        return None

    ctx.store.mark_processing(lead.id)
    company = job.get("company") or lead.company

    cached = ctx.cache.get_domain(company)
    if cached == NOT_FOUND:
        log.info("domain cache hit (negative)", extra={"company": company})
        return StageOutcome(Outcome.NOT_FOUND)
    if cached:
        log.info("domain cache hit", extra={"company": company, "domain": cached})
        return StageOutcome(Outcome.FOUND, domain=cached)

    domain = ctx.domain_resolver.resolve(company)
    ctx.cache.set_domain(company, domain)
    if domain:
        return StageOutcome(Outcome.FOUND, domain=domain)
    return StageOutcome(Outcome.NOT_FOUND)


def handle_find_executive(ctx: PipelineContext, job: Job, lead: Lead) -> StageOutcome:
    domain = lead.domain or ""
    company = lead.company or job.get("company") or ""

    cached = ctx.cache.get_executive(domain)
    if cached == NOT_FOUND:
        return StageOutcome(Outcome.NOT_FOUND, result=StageResult())
    if cached:
        return StageOutcome(Outcome.FOUND, result=StageResult(ceo_name=cached))

    found = ctx.executive_resolver.lookup(company, domain)
    name = found.name
    if name or found.cacheable:
        ctx.cache.set_executive(domain, name)
    if name:
        return StageOutcome(Outcome.FOUND, result=StageResult(ceo_name=name))
    return StageOutcome(Outcome.NOT_FOUND, result=StageResult())


def handle_find_email(ctx: PipelineContext, job: Job, lead: Lead) -> StageOutcome:
    domain = lead.domain or ""
    first = job.get("first_name")
    last = job.get("last_name")
    if not first:
        first, last = normalize_name_parts(lead.full_name)

    match = ctx.email_resolver.resolve(first, last or "", domain)
    if match is None:
        return StageOutcome(Outcome.NOT_FOUND, result=StageResult())
    return StageOutcome(
        Outcome.FOUND,
        result=StageResult(
            email=match.email,
            email_pattern=match.pattern,
            email_status=match.status,
            email_verified=True,
        ),
    )


_DOWNSTREAM_HANDLERS = {
    FIND_EXECUTIVE: handle_find_executive,
    FIND_EMAIL: handle_find_email,
}


# -----------------------------
# Transitions
# -----------------------------


def _apply(ctx: PipelineContext, job: Job, so: StageOutcome, *, error: str | None = None) -> None:
    action = next_action(job.task_type, so.outcome)

    if action.reschedule:
        delay = compute_backoff(
            job.attempt,
            base=ctx.settings.retry.base_backoff_seconds,
            cap=ctx.settings.retry.max_backoff_seconds,
            jitter="equal",
        )
        ctx.scheduler.enqueue(job.next_attempt(), delay=delay)
        log.warning(
            "stage retry scheduled",
            extra={
                "task_type": job.task_type,
                "lead_id": job.lead_id,
                "attempt": job.attempt + 1,
                "delay": round(delay, 3),
                "error": error,
            },
        )
        return

    if action.enqueue_downstream:
        if ctx.store.set_domain(job.lead_id, so.domain or ""):
            log.info("domain found", extra={"lead_id": job.lead_id, "domain": so.domain})
        lead = _load_lead(ctx, job)
        domain = lead.domain or so.domain or ""
        if not ctx.downstream_stages():
            ctx.store.mark_terminal(job.lead_id, "completed")
            return
        _dispatch_downstream(ctx, lead, domain)
        return

    if action.terminal_status:
        ctx.store.mark_terminal(job.lead_id, action.terminal_status, error=error)
        log.info(
            "lead terminal",
            extra={"lead_id": job.lead_id, "status": action.terminal_status, "stage": job.task_type},
        )
        return

    if action.close_stage:
        status = ctx.store.finish_stage(
            job.lead_id,
            job.task_type,
            result=so.result,
            failed=action.stage_failed,
            error=error,
        )
        log.info(
            "stage closed",
            extra={
                "lead_id": job.lead_id,
                "stage": job.task_type,
                "outcome": so.outcome.value,
                "lead_status": status,
            },
        )


def _fail_stage(ctx: PipelineContext, job: Job, error: str) -> None:
    so = StageOutcome(Outcome.FAILED, result=StageResult())
    _apply(ctx, job, so, error=error)


# -----------------------------
# Runner
# -----------------------------


def run_job(ctx: PipelineContext, job: Job) -> Outcome | None:
    """
    Run one stage and apply its transition. Returns the stage Outcome, or
    None when the job was a no-op (stale/duplicate delivery).
    """
    log.info(
        "job start",
        extra={"task_type": job.task_type, "lead_id": job.lead_id, "attempt": job.attempt},
    )
    try:
        job.validate()
        lead = _load_lead(ctx, job)
        if lead.is_terminal:
            log.info("lead already terminal; dropping job", extra={"lead_id": lead.id})
            return None

        if job.task_type == FIND_DOMAIN:
            so = handle_find_domain(ctx, job, lead)
        else:
            if job.task_type not in lead.pending_stages:
                log.info(
                    "stage not pending; dropping job",
                    extra={"lead_id": lead.id, "stage": job.task_type},
                )
                return None
            so = _DOWNSTREAM_HANDLERS[job.task_type](ctx, job, lead)

        if so is None:
            return None
        _apply(ctx, job, so)
        return so.outcome

    except InvalidJobError as exc:
        log.error("invalid job dropped", extra={"job_id": job.job_id, "exc": str(exc)})
        lead = ctx.store.get_lead(job.lead_id)
        if lead is not None and not lead.is_terminal:
            ctx.store.mark_terminal(job.lead_id, "failed", error=f"invalid job: {exc}")
        return Outcome.FAILED

    except RetryableError as exc:
        error = f"{type(exc).__name__}: {exc}"
        if job.attempt < ctx.max_attempts(job.task_type):
            _apply(ctx, job, StageOutcome(Outcome.RETRY), error=error)
            return Outcome.RETRY
        log.error(
            "stage attempts exhausted",
            extra={"task_type": job.task_type, "lead_id": job.lead_id, "attempt": job.attempt},
        )
        _fail_stage(ctx, job, error)
        return Outcome.FAILED

    except Exception as exc:
        log.exception(
            "job crashed", extra={"task_type": job.task_type, "lead_id": job.lead_id}
        )
        try:
            _fail_stage(ctx, job, f"{type(exc).__name__}: {exc}")
        except Exception:
            log.exception("could not mark stage failed", extra={"lead_id": job.lead_id})
        raise


# -----------------------------
# RQ entry point
# -----------------------------


def process_job(payload: dict) -> str:
    """
    Worker entry (enqueued as "leadgen.queueing.tasks.process_job").

    A saturated task type defers the job without consuming an attempt.
    """
    settings = load_settings()
    try:
        job = Job.from_dict(payload)
    except InvalidJobError as exc:
        log.error("unparseable job payload dropped", extra={"exc": str(exc)})
        return "invalid"

    ctx = build_context(settings)
    try:
        limit = ctx.concurrency_limit(job.task_type)
        with task_slot(job.task_type, redis=ctx.redis, limit=limit) as acquired:
            if not acquired:
                ctx.scheduler.enqueue(job, delay=settings.concurrency.slot_retry_seconds)
                log.info(
                    "task type saturated; deferred",
                    extra={"task_type": job.task_type, "lead_id": job.lead_id},
                )
                return "deferred"
            outcome = run_job(ctx, job)
        return outcome.value if outcome else "skipped"
    finally:
        ctx.close()


def run_inline(ctx: PipelineContext) -> int:
    """
    Drain an inline context's MemoryScheduler. Returns jobs run.

    A crashed job has already failed its stage and been logged by run_job;
    the inline driver keeps going with the remaining jobs.
    """
    drain = getattr(ctx.scheduler, "drain", None)
    if drain is None:
        raise TypeError("run_inline needs a context built with inline=True")

    def _run(job: Job) -> None:
        try:
            run_job(ctx, job)
        except Exception:
            log.warning("inline job crashed", extra={"lead_id": job.lead_id})

    return drain(_run)


__all__ = [
    "StageOutcome",
    "enqueue_domain_job",
    "handle_find_domain",
    "handle_find_executive",
    "handle_find_email",
    "run_job",
    "run_inline",
    "process_job",
]
