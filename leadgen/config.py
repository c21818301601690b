from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_optional(name: str) -> str | None:
    return os.getenv(name, "").strip() or None


def _getenv_list(name: str) -> tuple[str, ...]:
    """Comma-separated list; blanks dropped."""
    return tuple(p.strip() for p in os.getenv(name, "").split(",") if p.strip())


def _getenv_bool(name: str, default: bool) -> bool:
    """
    Read a loosely-typed boolean from the environment.

    Treats "1", "true", "yes", "on" (case-insensitive) as True;
    "0", "false", "no", "off", "" as False. If unset, returns default.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off", ""}:
        return False
    # Fallback: any other non-empty value -> True
    return True


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

APP_VERSION = "2.0.0"


def _db_path_from_env() -> str:
    # Prefer DATABASE_URL if set; otherwise fall back to DATABASE_PATH; otherwise dev.db
    url = os.environ.get("DATABASE_URL")
    if url:
        if not url.startswith("sqlite:///"):
            raise ValueError(f"Only sqlite DATABASE_URL values are supported; got {url}")
        return url.removeprefix("sqlite:///")
    return os.environ.get("DATABASE_PATH") or "dev.db"


@dataclass(frozen=True)
class QueueConfig:
    redis_url: str
    domain_queue: str
    executive_queue: str
    email_queue: str
    dlq_name: str
    job_timeout: int
    # Worker-side overrides; empty means "all pipeline queues" / rq.Worker
    worker_queues: tuple[str, ...] = ()
    worker_class: str | None = None


@dataclass(frozen=True)
class ConcurrencyConfig:
    domain: int
    executive: int
    email: int
    slot_retry_seconds: float


@dataclass(frozen=True)
class RetryConfig:
    domain_max_attempts: int
    executive_max_attempts: int
    email_max_attempts: int
    base_backoff_seconds: float
    max_backoff_seconds: float


@dataclass(frozen=True)
class SchedulingConfig:
    domain_jitter_seconds: float
    downstream_jitter_seconds: float
    email_enrichment_enabled: bool


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool
    domain_ttl_seconds: int
    executive_ttl_seconds: int
    prefix: str


@dataclass(frozen=True)
class SearchConfig:
    api_url: str
    api_key: str | None
    zone: str
    country: str
    timeout_seconds: float
    max_retries: int
    query_delay_seconds: float


@dataclass(frozen=True)
class LlmConfig:
    api_key: str | None
    model: str
    api_base: str | None
    timeout_seconds: float
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class VerifierConfig:
    api_url: str
    api_key: str | None
    timeout_seconds: float
    delay_seconds: float


@dataclass(frozen=True)
class DbConfig:
    path: str


@dataclass(frozen=True)
class ApiConfig:
    body_limit_bytes: int
    max_leads_per_request: int


@dataclass(frozen=True)
class AppConfig:
    queue: QueueConfig
    concurrency: ConcurrencyConfig
    retry: RetryConfig
    scheduling: SchedulingConfig
    cache: CacheConfig
    search: SearchConfig
    llm: LlmConfig
    verifier: VerifierConfig
    db: DbConfig
    api: ApiConfig


def load_settings() -> AppConfig:
    queue = QueueConfig(
        redis_url=_getenv_str("RQ_REDIS_URL", "redis://127.0.0.1:6379/0"),
        domain_queue=_getenv_str("DOMAIN_QUEUE", "find-domain"),
        executive_queue=_getenv_str("EXECUTIVE_QUEUE", "find-executive"),
        email_queue=_getenv_str("EMAIL_QUEUE", "find-email"),
        dlq_name=_getenv_str("DLQ_NAME", "leads_dlq"),
        job_timeout=_getenv_int("JOB_TIMEOUT_SECONDS", 300),
        worker_queues=_getenv_list("RQ_QUEUE"),
        worker_class=_getenv_optional("RQ_WORKER_CLASS"),
    )
    # Domain lookups are cheaper than executive/email lookups, so they get more slots.
    concurrency = ConcurrencyConfig(
        domain=_getenv_int("DOMAIN_MAX_CONCURRENCY", 3),
        executive=_getenv_int("EXECUTIVE_MAX_CONCURRENCY", 2),
        email=_getenv_int("EMAIL_MAX_CONCURRENCY", 2),
        slot_retry_seconds=_getenv_float("SLOT_RETRY_SECONDS", 5.0),
    )
    retry = RetryConfig(
        domain_max_attempts=_getenv_int("DOMAIN_MAX_ATTEMPTS", 3),
        executive_max_attempts=_getenv_int("EXECUTIVE_MAX_ATTEMPTS", 2),
        email_max_attempts=_getenv_int("EMAIL_MAX_ATTEMPTS", 2),
        base_backoff_seconds=_getenv_float("RETRY_BASE_BACKOFF_SECONDS", 2.0),
        max_backoff_seconds=_getenv_float("RETRY_MAX_BACKOFF_SECONDS", 90.0),
    )
    scheduling = SchedulingConfig(
        domain_jitter_seconds=_getenv_float("DOMAIN_JITTER_SECONDS", 5.0),
        downstream_jitter_seconds=_getenv_float("DOWNSTREAM_JITTER_SECONDS", 3.0),
        email_enrichment_enabled=_getenv_bool("EMAIL_ENRICHMENT_ENABLED", True),
    )
    cache = CacheConfig(
        enabled=_getenv_bool("LOOKUP_CACHE_ENABLED", True),
        domain_ttl_seconds=_getenv_int("DOMAIN_CACHE_TTL_SECONDS", 7 * 86400),
        executive_ttl_seconds=_getenv_int("EXECUTIVE_CACHE_TTL_SECONDS", 86400),
        prefix=_getenv_str("LOOKUP_CACHE_PREFIX", "leadgen"),
    )
    search = SearchConfig(
        api_url=_getenv_str("SEARCH_API_URL", "https://api.brightdata.com/request"),
        api_key=_getenv_optional("SEARCH_API_KEY"),
        zone=_getenv_str("SEARCH_ZONE", "domain_finder"),
        country=_getenv_str("SEARCH_COUNTRY", "US"),
        timeout_seconds=_getenv_float("SEARCH_TIMEOUT_SECONDS", 45.0),
        max_retries=_getenv_int("SEARCH_MAX_RETRIES", 1),
        query_delay_seconds=_getenv_float("SEARCH_QUERY_DELAY_SECONDS", 1.0),
    )
    llm = LlmConfig(
        api_key=_getenv_optional("OPENAI_API_KEY"),
        model=_getenv_str("OPENAI_MODEL", "gpt-4.1-mini"),
        api_base=_getenv_optional("OPENAI_API_BASE"),
        timeout_seconds=_getenv_float("OPENAI_TIMEOUT_SECONDS", 30.0),
        temperature=_getenv_float("OPENAI_TEMPERATURE", 0.2),
        max_tokens=_getenv_int("OPENAI_MAX_TOKENS", 100),
    )
    verifier = VerifierConfig(
        api_url=_getenv_str(
            "EMAIL_VERIFY_URL",
            "https://api.getprospect.com/public/v1/email/verify",
        ),
        api_key=_getenv_optional("EMAIL_VERIFY_API_KEY"),
        timeout_seconds=_getenv_float("EMAIL_VERIFY_TIMEOUT_SECONDS", 10.0),
        delay_seconds=_getenv_float("EMAIL_VERIFY_DELAY_SECONDS", 0.5),
    )
    db = DbConfig(path=_db_path_from_env())
    api = ApiConfig(
        body_limit_bytes=_getenv_int("BODY_LIMIT_BYTES", 10 * 1024 * 1024),
        max_leads_per_request=_getenv_int("MAX_LEADS_PER_REQUEST", 5000),
    )
    return AppConfig(
        queue=queue,
        concurrency=concurrency,
        retry=retry,
        scheduling=scheduling,
        cache=cache,
        search=search,
        llm=llm,
        verifier=verifier,
        db=db,
        api=api,
    )


__all__ = [
    "APP_VERSION",
    "QueueConfig",
    "ConcurrencyConfig",
    "RetryConfig",
    "SchedulingConfig",
    "CacheConfig",
    "SearchConfig",
    "LlmConfig",
    "VerifierConfig",
    "DbConfig",
    "ApiConfig",
    "AppConfig",
    "load_settings",
]
