# leadgen/api/extraction.py
from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from leadgen.admin.metrics import queue_status_payload
from leadgen.api.deps import ApiState, get_state
from leadgen.ingest.normalize import normalize_lead
from leadgen.queueing.tasks import enqueue_domain_job

log = logging.getLogger(__name__)

router = APIRouter(prefix="/extraction", tags=["extraction"])

DEFAULT_USER_ID = "chrome_extension"


class ExtractRequest(BaseModel):
    leads: list[dict[str, Any]]
    fileId: str | None = None
    fileName: str | None = None
    userId: str | None = None


class CheckDuplicatesRequest(BaseModel):
    leads: list[dict[str, Any]]


class TriggerDomainRequest(BaseModel):
    leadId: str = Field(min_length=1)
    company: str | None = None


def _enqueue(state: ApiState, lead_id: str, company: str, user_id: str) -> bool:
    try:
        enqueue_domain_job(
            state.scheduler,
            lead_id,
            company,
            jitter_seconds=state.settings.scheduling.domain_jitter_seconds,
            user_id=user_id,
            rng=state.rng,
        )
        return True
    except RedisError as exc:
        log.warning("failed to queue domain job", extra={"lead_id": lead_id, "exc": str(exc)})
        return False


@router.post("/extract")
def extract(body: ExtractRequest, state: Annotated[ApiState, Depends(get_state)]) -> dict:
    """
    Persist a batch of scraped leads and queue a domain lookup for each new one.

    Leads with a too-short name/company, or already stored (same full name
    and company, case-insensitive), are skipped.
    """
    if len(body.leads) > state.settings.api.max_leads_per_request:
        raise HTTPException(
            status_code=413,
            detail=f"Too many leads (> {state.settings.api.max_leads_per_request})",
        )

    store = state.store
    user_id = body.userId or DEFAULT_USER_ID

    file_id = body.fileId
    if file_id:
        if store.get_file(file_id) is None:
            raise HTTPException(status_code=404, detail=f"Unknown file {file_id}")
    else:
        name = (body.fileName or "").strip() or (
            "Extraction " + datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
        )
        file_id = store.create_file(name, total_leads=len(body.leads)).id

    inserted: list[tuple[str, str]] = []
    skipped = 0
    for raw in body.leads:
        lead = normalize_lead(raw) if isinstance(raw, dict) else None
        if lead is None:
            skipped += 1
            continue
        if store.find_duplicate(lead.full_name, lead.company):
            skipped += 1
            continue
        row = store.insert_lead(
            full_name=lead.full_name,
            company=lead.company,
            file_id=file_id,
            first_name=lead.first_name,
            last_name=lead.last_name,
            title=lead.title,
            location=lead.location,
            linkedin_url=lead.linkedin_url,
            created_by=user_id,
        )
        inserted.append((row.id, row.company))

    queued = sum(1 for lead_id, company in inserted if _enqueue(state, lead_id, company, user_id))

    log.info(
        "extraction batch stored",
        extra={
            "file_id": file_id,
            "inserted": len(inserted),
            "skipped": skipped,
            "queued": queued,
        },
    )
    return {
        "success": True,
        "insertedCount": len(inserted),
        "skippedCount": skipped,
        "totalLeads": len(body.leads),
        "queuedJobs": queued,
        "fileId": file_id,
    }


@router.get("/status/{file_id}")
def status(file_id: str, state: Annotated[ApiState, Depends(get_state)]) -> dict[str, int]:
    return state.store.file_stats(file_id)


@router.post("/check-duplicates")
def check_duplicates(
    body: CheckDuplicatesRequest, state: Annotated[ApiState, Depends(get_state)]
) -> dict[str, list[bool]]:
    out: list[bool] = []
    for raw in body.leads:
        lead = normalize_lead(raw) if isinstance(raw, dict) else None
        out.append(bool(lead) and state.store.find_duplicate(lead.full_name, lead.company))
    return {"duplicates": out}


@router.get("/queue-status")
def queue_status(state: Annotated[ApiState, Depends(get_state)]) -> dict:
    return {"success": True, **queue_status_payload(state.redis, state.settings.queue)}


@router.post("/trigger-domain-finding")
def trigger_domain_finding(
    body: TriggerDomainRequest, state: Annotated[ApiState, Depends(get_state)]
) -> dict:
    lead = state.store.get_lead(body.leadId)
    if lead is None:
        raise HTTPException(status_code=404, detail=f"Unknown lead {body.leadId}")
    company = (body.company or "").strip() or lead.company
    try:
        job_id = enqueue_domain_job(
            state.scheduler, lead.id, company, jitter_seconds=0.0, user_id="manual-trigger"
        )
    except RedisError as exc:
        raise HTTPException(status_code=503, detail=f"Domain queue not available: {exc}") from exc
    return {"success": True, "jobId": job_id, "leadId": lead.id, "company": company}
