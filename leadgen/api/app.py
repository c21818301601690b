# leadgen/api/app.py
from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis import Redis

from leadgen.api import export as export_routes
from leadgen.api import extraction as extraction_routes
from leadgen.api import files as files_routes
from leadgen.api.body_limit import BodySizeLimitMiddleware
from leadgen.api.deps import ApiState
from leadgen.config import APP_VERSION, AppConfig, load_settings
from leadgen.db import LeadStore
from leadgen.exceptions import PersistenceError
from leadgen.queueing.redis_conn import get_redis
from leadgen.queueing.scheduler import RQScheduler, Scheduler

log = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    """
    Helper to return a JSON error payload with a consistent shape.

    Example:
        { "error": "persistence_error", "detail": "database is locked" }
    """
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


def create_app(
    settings: AppConfig | None = None,
    *,
    store: LeadStore | None = None,
    scheduler: Scheduler | None = None,
    redis: Redis | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    if store is None:
        store = LeadStore(settings.db.path)
        store.ensure_schema()
    if scheduler is None:
        redis = redis if redis is not None else get_redis(settings.queue.redis_url)
        scheduler = RQScheduler(redis, settings.queue)

    app = FastAPI(title="Lead Enrichment API", version=APP_VERSION)
    app.state.leadgen = ApiState(settings=settings, store=store, scheduler=scheduler, redis=redis)

    # Register early so limits apply to all routes
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.api.body_limit_bytes)
    # The browser extension posts from its own origin.
    app.add_middleware(
        CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]
    )

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
        log.error("persistence error", extra={"path": request.url.path, "exc": str(exc)})
        return _error_response(500, "persistence_error", str(exc))

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return _error_response(exc.status_code, "http_error", str(exc.detail))

    api = APIRouter(prefix="/api")

    @api.get("/health")
    def health() -> dict[str, str]:
        return {
            "status": "healthy",
            "version": APP_VERSION,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    api.include_router(files_routes.router)
    api.include_router(extraction_routes.router)
    api.include_router(export_routes.router)
    app.include_router(api)
    return app


__all__ = ["create_app"]
