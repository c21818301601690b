# tests/conftest.py
from __future__ import annotations

import random
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from leadgen.config import AppConfig, load_settings  # noqa: E402
from leadgen.db import LeadStore  # noqa: E402
from leadgen.queueing.context import PipelineContext, build_context  # noqa: E402
from leadgen.verify.provider import VerifyResult  # noqa: E402

# ---------------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------------


class FakeSearch:
    """
    Returns canned markup per query. `pages` maps a query substring to
    markup (or to an exception instance, which is raised). Unmatched
    queries return `default`.
    """

    def __init__(self, pages: dict[str, object] | None = None, default: object = "") -> None:
        self.pages = dict(pages or {})
        self.default = default
        self.queries: list[str] = []

    def search(self, query: str, *, num: int = 20) -> str:
        self.queries.append(query)
        result = self.default
        for needle, value in self.pages.items():
            if needle in query:
                result = value
                break
        if isinstance(result, BaseException):
            raise result
        return str(result)


class FakeExtractor:
    def __init__(self, answer: str | BaseException = "") -> None:
        self.answer = answer
        self.calls: list[tuple[str, str, str]] = []

    def extract(self, company: str, domain: str, text: str) -> str:
        self.calls.append((company, domain, text))
        if isinstance(self.answer, BaseException):
            raise self.answer
        return self.answer


class FakeVerifier:
    """
    `valid` is the set of addresses reported deliverable; `errors` maps an
    address to the exception raised when it is checked.
    """

    def __init__(
        self,
        valid: set[str] | None = None,
        errors: dict[str, BaseException] | None = None,
    ) -> None:
        self.valid = set(valid or ())
        self.errors = dict(errors or {})
        self.calls: list[str] = []

    def verify(self, email: str) -> VerifyResult:
        self.calls.append(email)
        if email in self.errors:
            raise self.errors[email]
        if email in self.valid:
            return VerifyResult(email, True, "valid", confidence=95.0)
        return VerifyResult(email, False, "invalid", confidence=10.0)


def executive_markup(company: str, name: str, *, sentences: int = 10) -> str:
    """A results page with enough executive sentences to stop the query loop."""
    body = " ".join(
        f"{name} is the CEO of {company} and has led it since {2000 + i}."
        for i in range(sentences)
    )
    return f"<html><body><script>var x = 1;</script><p>{body}</p></body></html>"


def domain_markup(*urls: str) -> str:
    links = "".join(f'<a href="{u}">result</a>' for u in urls)
    return f"<html><body>{links}</body></html>"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "leads.db"))
    monkeypatch.setenv("EMAIL_ENRICHMENT_ENABLED", "1")
    monkeypatch.setenv("LOOKUP_CACHE_ENABLED", "1")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("RQ_QUEUE", raising=False)
    monkeypatch.delenv("RQ_WORKER_CLASS", raising=False)
    return load_settings()


@pytest.fixture
def store(settings: AppConfig) -> LeadStore:
    s = LeadStore(settings.db.path)
    s.ensure_schema()
    return s


@pytest.fixture
def make_ctx(settings: AppConfig, store: LeadStore) -> Callable[..., PipelineContext]:
    """
    Factory for an inline PipelineContext (MemoryScheduler + memory cache)
    wired to fakes. Sleeps are recorded instead of slept.
    """
    built: list[PipelineContext] = []

    def _make(
        *,
        search: FakeSearch | None = None,
        extractor: FakeExtractor | None = None,
        verifier: FakeVerifier | None = None,
        cfg: AppConfig | None = None,
        redis=None,
    ) -> PipelineContext:
        slept: list[float] = []
        ctx = build_context(
            cfg or settings,
            inline=True,
            search=search or FakeSearch(),
            extractor=extractor or FakeExtractor(),
            verifier=verifier or FakeVerifier(),
            sleep=slept.append,
            rng=random.Random(7),
        )
        ctx.redis = redis
        built.append(ctx)
        return ctx

    yield _make
    for ctx in built:
        ctx.close()
