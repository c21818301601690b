# tests/test_api.py
from __future__ import annotations

from collections.abc import Generator
from dataclasses import replace
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from leadgen.api.app import create_app
from leadgen.config import APP_VERSION
from leadgen.exceptions import PersistenceError
from leadgen.queueing.jobs import FIND_DOMAIN
from leadgen.queueing.scheduler import MemoryScheduler

# ---------------------------------------------------------------------------
# TestClient fixtures
# ---------------------------------------------------------------------------


class BrokenScheduler:
    """Scheduler whose Redis is down."""

    def enqueue(self, job, *, delay: float = 0.0) -> str:
        raise RedisConnectionError("connection refused")


@pytest.fixture
def api(settings, store) -> Generator[SimpleNamespace, None, None]:
    scheduler = MemoryScheduler()
    app = create_app(settings, store=store, scheduler=scheduler)
    with TestClient(app) as client:
        yield SimpleNamespace(client=client, store=store, scheduler=scheduler, settings=settings)


def _client_with(settings, store, **overrides) -> TestClient:
    scheduler = overrides.pop("scheduler", None) or MemoryScheduler()
    cfg = replace(settings, api=replace(settings.api, **overrides)) if overrides else settings
    return TestClient(create_app(cfg, store=store, scheduler=scheduler))


LEADS = [
    {"fullName": "Jane Doe", "company": "Acme Corp", "title": "VP Sales"},
    {"fullName": "J", "company": "Acme Corp"},
    {"fullName": "jane doe", "company": "ACME CORP"},
]


# ---------------------------------------------------------------------------
# Health / files
# ---------------------------------------------------------------------------


def test_health(api):
    resp = api.client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["version"] == APP_VERSION
    assert body["timestamp"]


def test_create_and_list_files(api):
    resp = api.client.post("/api/files", json={"name": "  Batch A  "})
    assert resp.status_code == 200
    created = resp.json()
    assert created["name"] == "Batch A"
    assert created["total_leads"] == 0

    listed = api.client.get("/api/files").json()
    assert [f["id"] for f in listed] == [created["id"]]


def test_create_file_requires_name(api):
    resp = api.client.post("/api/files", json={"name": "   "})
    assert resp.status_code == 400
    assert resp.json() == {"error": "http_error", "detail": "File name is required"}


def test_persistence_errors_map_to_500(api, monkeypatch):
    def broken():
        raise PersistenceError("database is locked")

    monkeypatch.setattr(api.store, "list_files", broken)
    resp = api.client.get("/api/files")
    assert resp.status_code == 500
    assert resp.json() == {"error": "persistence_error", "detail": "database is locked"}


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def test_extract_stores_new_leads_and_queues_domain_jobs(api):
    resp = api.client.post("/api/extraction/extract", json={"leads": LEADS, "fileName": "Run 1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["insertedCount"] == 1
    assert body["skippedCount"] == 2
    assert body["totalLeads"] == 3
    assert body["queuedJobs"] == 1

    f = api.store.get_file(body["fileId"])
    assert f.name == "Run 1"
    assert f.total_leads == 3

    (lead,) = api.store.list_leads(f.id)
    assert lead.full_name == "Jane Doe"
    assert lead.title == "VP Sales"
    assert lead.created_by == "chrome_extension"

    (queued,) = api.scheduler.history
    assert queued.job.task_type == FIND_DOMAIN
    assert queued.job.lead_id == lead.id
    assert queued.job.get("company") == "Acme Corp"
    assert 0.0 <= queued.delay <= api.settings.scheduling.domain_jitter_seconds


def test_extract_into_existing_file_skips_stored_duplicates(api):
    f = api.store.create_file("Existing")
    first = api.client.post("/api/extraction/extract", json={"leads": LEADS[:1], "fileId": f.id})
    assert first.json()["insertedCount"] == 1

    again = api.client.post(
        "/api/extraction/extract",
        json={"leads": LEADS[:1], "fileId": f.id, "userId": "someone"},
    ).json()
    assert again["insertedCount"] == 0
    assert again["skippedCount"] == 1
    assert again["fileId"] == f.id
    assert len(api.scheduler) == 1


def test_extract_unknown_file_is_404(api):
    resp = api.client.post("/api/extraction/extract", json={"leads": LEADS, "fileId": "nope"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "http_error"


def test_extract_default_file_name(api):
    body = api.client.post("/api/extraction/extract", json={"leads": LEADS[:1]}).json()
    assert api.store.get_file(body["fileId"]).name.startswith("Extraction ")


def test_extract_survives_queue_outage(settings, store):
    client = _client_with(settings, store, scheduler=BrokenScheduler())
    body = client.post("/api/extraction/extract", json={"leads": LEADS}).json()
    assert body["success"] is True
    assert body["insertedCount"] == 1
    assert body["queuedJobs"] == 0
    # the lead stays pending for a later requeue
    (lead,) = store.list_leads(body["fileId"])
    assert lead.status == "pending"


def test_extract_rejects_too_many_leads(settings, store):
    client = _client_with(settings, store, max_leads_per_request=2)
    resp = client.post("/api/extraction/extract", json={"leads": LEADS})
    assert resp.status_code == 413
    assert store.list_files() == []


def test_oversized_body_is_rejected(settings, store):
    client = _client_with(settings, store, body_limit_bytes=200)
    leads = [{"fullName": f"Person {i}", "company": "Acme Corp"} for i in range(20)]
    resp = client.post("/api/extraction/extract", json={"leads": leads})
    assert resp.status_code == 413
    assert "Payload too large" in resp.json()["error"]
    assert store.list_files() == []


def test_extract_requires_leads_list(api):
    assert api.client.post("/api/extraction/extract", json={"fileName": "x"}).status_code == 422


def test_status_reports_file_counts(api):
    body = api.client.post("/api/extraction/extract", json={"leads": LEADS}).json()
    stats = api.client.get(f"/api/extraction/status/{body['fileId']}").json()
    assert stats["current_total"] == 1
    assert stats["pending"] == 1
    assert stats["completed"] == 0


def test_check_duplicates(api):
    api.store.insert_lead(full_name="Jane Doe", company="Acme Corp")
    resp = api.client.post(
        "/api/extraction/check-duplicates",
        json={
            "leads": [
                {"fullName": " jane doe ", "company": "acme corp"},
                {"fullName": "Bob Ray", "company": "Globex"},
                {"fullName": "x"},
            ]
        },
    )
    assert resp.json() == {"duplicates": [True, False, False]}


def test_queue_status_without_redis_is_zeroed(api):
    body = api.client.get("/api/extraction/queue-status").json()
    assert body["success"] is True
    assert api.settings.queue.domain_queue in body["queues"]
    assert all(q["queued"] == 0 for q in body["queues"].values())
    assert body["workers"] == []


# ---------------------------------------------------------------------------
# Manual trigger
# ---------------------------------------------------------------------------


def test_trigger_domain_finding(api):
    lead = api.store.insert_lead(full_name="Jane Doe", company="Acme Corp")
    resp = api.client.post(
        "/api/extraction/trigger-domain-finding",
        json={"leadId": lead.id, "company": "Acme Corporation"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body == {
        "success": True,
        "jobId": body["jobId"],
        "leadId": lead.id,
        "company": "Acme Corporation",
    }
    (queued,) = api.scheduler.history
    assert queued.delay == 0.0
    assert queued.job.job_id == body["jobId"]
    assert queued.job.get("user_id") == "manual-trigger"


def test_trigger_defaults_to_stored_company(api):
    lead = api.store.insert_lead(full_name="Jane Doe", company="Acme Corp")
    body = api.client.post(
        "/api/extraction/trigger-domain-finding", json={"leadId": lead.id}
    ).json()
    assert body["company"] == "Acme Corp"


def test_trigger_errors(api, settings, store):
    assert (
        api.client.post("/api/extraction/trigger-domain-finding", json={"leadId": "nope"}).status_code
        == 404
    )
    assert api.client.post("/api/extraction/trigger-domain-finding", json={}).status_code == 422

    lead = store.insert_lead(full_name="Jane Doe", company="Acme Corp")
    down = _client_with(settings, store, scheduler=BrokenScheduler())
    resp = down.post("/api/extraction/trigger-domain-finding", json={"leadId": lead.id})
    assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def test_export_csv(api):
    body = api.client.post("/api/extraction/extract", json={"leads": LEADS}).json()
    resp = api.client.get(f"/api/export/csv/{body['fileId']}")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.headers["content-disposition"] == (
        f'attachment; filename="leads_{body["fileId"]}.csv"'
    )
    lines = resp.text.strip().splitlines()
    assert lines[0].startswith("id,full_name,company")
    assert len(lines) == 2
    assert "Jane Doe,Acme Corp,VP Sales" in lines[1]


def test_export_csv_unknown_file_is_404(api):
    resp = api.client.get("/api/export/csv/missing")
    assert resp.status_code == 404
    assert resp.json() == {"error": "http_error", "detail": "No leads found for this file"}
