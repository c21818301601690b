# tests/test_executive.py
from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest
from conftest import FakeExtractor, FakeSearch, executive_markup

from leadgen.config import LlmConfig
from leadgen.exceptions import ProviderError, RateLimitedError
from leadgen.extract.executive import (
    ExecutiveExtractor,
    build_prompt,
    clean_executive_name,
    relevant_text,
    visible_text,
)
from leadgen.resolve.executive import (
    ENOUGH_TEXT_CHARS,
    MIN_TEXT_CHARS,
    ExecutiveLookup,
    ExecutiveResolver,
    build_queries,
)

LLM_CFG = LlmConfig(
    api_key="sk-test",
    model="gpt-test",
    api_base=None,
    timeout_seconds=5.0,
    temperature=0.0,
    max_tokens=20,
)

# ---------------------------------------------------------------------------
# Name validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("John Smith", "John Smith"),
        ('"Jane Doe"', "Jane Doe"),
        ("Dr. Jane Doe, CEO", "Jane Doe"),
        ("Mr. Robert Downey Jr.", "Robert Downey"),
        ("Jean-Luc Picard", "Jean-Luc Picard"),
        ("Kelly O'Brien", "Kelly O'Brien"),
        ("Mary Anne Van Buren", "Mary Anne Van Buren"),
        ("  Tim   Cook  ", "Tim Cook"),
    ],
)
def test_valid_names_are_cleaned(raw, expected):
    assert clean_executive_name(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        None,
        "NOT_FOUND",
        "Madonna",
        "CEO Madonna",
        "Mary Anne Van Der Berg",
        "Alpha Beta Gamma Delta Epsilon",
        "john smith",
        "J Smith",
        "José García",
        "John Smith3",
        "Unknown",
        "There is no CEO mentioned in the text",
        "The visible text does not contain a name",
        "Abcdefghijklmnopqrstuv Smith",
    ],
)
def test_invalid_answers_are_rejected(raw):
    assert clean_executive_name(raw) == ""


# ---------------------------------------------------------------------------
# Text narrowing
# ---------------------------------------------------------------------------


def test_visible_text_drops_scripts_and_styles():
    markup = "<html><style>p{}</style><script>alert(1)</script><p>Hello <b>there</b></p></html>"
    assert visible_text(markup) == "Hello there"


def test_relevant_text_prefers_sentences_about_the_company():
    markup = (
        "<p>Jane Doe is the CEO of Acme Widgets in Austin. "
        "Bob Ray is the CEO of Globex Corporation in Ohio. "
        "The weather today is sunny and warm everywhere.</p>"
    )
    text = relevant_text(markup, "Acme Widgets")
    assert "Jane Doe" in text
    assert "Globex" not in text


def test_relevant_text_falls_back_to_title_sentences_then_page_head():
    markup = "<p>Bob Ray is the president of a local charity. Nothing else to see on this page.</p>"
    assert "Bob Ray" in relevant_text(markup, "Initech")
    plain = "<p>no executives mentioned anywhere here</p>"
    assert relevant_text(plain, "Initech") == "no executives mentioned anywhere here"


# ---------------------------------------------------------------------------
# Model call
# ---------------------------------------------------------------------------


class _FakeCompletions:
    def __init__(self, answer: str | BaseException) -> None:
        self.answer = answer
        self.kwargs: list[dict] = []

    def create(self, **kwargs):
        self.kwargs.append(kwargs)
        if isinstance(self.answer, BaseException):
            raise self.answer
        message = SimpleNamespace(content=self.answer)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(answer):
    completions = _FakeCompletions(answer)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _status_error(cls, status: int):
    request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
    return cls("boom", response=httpx.Response(status, request=request), body=None)


def test_extractor_returns_validated_name():
    client, completions = _client("  Jane Doe  ")
    extractor = ExecutiveExtractor(LLM_CFG, client=client)
    assert extractor.extract("Acme", "acme.com", "Jane Doe is CEO of Acme") == "Jane Doe"
    sent = completions.kwargs[0]
    assert sent["model"] == "gpt-test"
    assert "NOT_FOUND" in sent["messages"][0]["content"]


def test_extractor_not_found_answer_is_empty():
    client, _ = _client("NOT_FOUND")
    assert ExecutiveExtractor(LLM_CFG, client=client).extract("Acme", "acme.com", "text") == ""


def test_extractor_without_api_key_is_disabled():
    cfg = LlmConfig(None, "gpt-test", None, 5.0, 0.0, 20)
    extractor = ExecutiveExtractor(cfg)
    assert not extractor.enabled
    assert extractor.extract("Acme", "acme.com", "text") == ""


def test_extractor_maps_rate_limit_and_server_errors():
    client, _ = _client(_status_error(openai.RateLimitError, 429))
    with pytest.raises(RateLimitedError):
        ExecutiveExtractor(LLM_CFG, client=client).extract("Acme", "acme.com", "text")

    client, _ = _client(_status_error(openai.InternalServerError, 503))
    with pytest.raises(RateLimitedError):
        ExecutiveExtractor(LLM_CFG, client=client).extract("Acme", "acme.com", "text")

    client, _ = _client(_status_error(openai.BadRequestError, 400))
    with pytest.raises(ProviderError) as ei:
        ExecutiveExtractor(LLM_CFG, client=client).extract("Acme", "acme.com", "text")
    assert not isinstance(ei.value, RateLimitedError)


def test_extractor_maps_connection_errors():
    request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
    client, _ = _client(openai.APIConnectionError(request=request))
    with pytest.raises(ProviderError):
        ExecutiveExtractor(LLM_CFG, client=client).extract("Acme", "acme.com", "text")


def test_prompt_names_company_and_domain():
    prompt = build_prompt("Acme", "acme.com", "some text")
    assert "Company: Acme" in prompt
    assert "Domain: acme.com" in prompt
    assert prompt.rstrip().endswith("NOT_FOUND")


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def test_build_queries_scoped_to_executive_titles():
    queries = build_queries("Acme", "acme.com")
    assert queries[0] == "CEO of Acme acme.com"
    assert '"Acme" CEO site:acme.com' in queries
    assert build_queries("", "acme.com")[0] == "CEO of acme.com"


def test_resolver_stops_once_enough_text_collected():
    search = FakeSearch(default=executive_markup("Acme", "John Smith"))
    extractor = FakeExtractor("John Smith")
    slept: list[float] = []
    resolver = ExecutiveResolver(search, extractor, query_delay_seconds=1.0, sleep=slept.append)

    assert resolver.resolve("Acme", "acme.com") == "John Smith"
    assert len(search.queries) == 1
    assert slept == []
    assert len(extractor.calls[0][2]) >= ENOUGH_TEXT_CHARS


def test_resolver_sleeps_between_queries():
    search = FakeSearch(default="<p>nothing useful</p>")
    slept: list[float] = []
    resolver = ExecutiveResolver(search, FakeExtractor(), query_delay_seconds=0.25, sleep=slept.append)
    resolver.gather_text("Acme", "acme.com")
    assert len(search.queries) == len(build_queries("Acme", "acme.com"))
    assert slept == [0.25] * (len(search.queries) - 1)


def test_resolver_skips_model_when_text_too_short():
    extractor = FakeExtractor("John Smith")
    resolver = ExecutiveResolver(
        FakeSearch(default="<p>CEO of Acme.</p>"), extractor, sleep=lambda s: None
    )
    assert resolver.resolve("Acme", "acme.com") is None
    assert extractor.calls == []
    assert MIN_TEXT_CHARS > len("CEO of Acme")


def test_resolver_model_rejection_is_not_found():
    search = FakeSearch(default=executive_markup("Acme", "John Smith"))
    resolver = ExecutiveResolver(search, FakeExtractor(""), sleep=lambda s: None)
    assert resolver.resolve("Acme", "acme.com") is None


def test_resolver_rate_limit_aborts_immediately():
    search = FakeSearch(default=RateLimitedError("429", provider="search", status_code=429))
    resolver = ExecutiveResolver(search, FakeExtractor("John Smith"), sleep=lambda s: None)
    with pytest.raises(RateLimitedError):
        resolver.resolve("Acme", "acme.com")
    assert len(search.queries) == 1


def test_resolver_skips_single_failed_query():
    search = FakeSearch(
        pages={"CEO of Acme acme.com": ProviderError("reset", provider="search")},
        default=executive_markup("Acme", "John Smith"),
    )
    resolver = ExecutiveResolver(search, FakeExtractor("John Smith"), sleep=lambda s: None)
    assert resolver.resolve("Acme", "acme.com") == "John Smith"
    assert len(search.queries) == 2


def test_resolver_raises_when_every_query_failed():
    search = FakeSearch(default=ProviderError("down", provider="search"))
    resolver = ExecutiveResolver(search, FakeExtractor("John Smith"), sleep=lambda s: None)
    with pytest.raises(ProviderError):
        resolver.resolve("Acme", "acme.com")
    assert len(search.queries) == len(build_queries("Acme", "acme.com"))


def test_lookup_miss_after_failed_query_is_not_cacheable():
    search = FakeSearch(
        pages={"CEO of Acme acme.com": ProviderError("reset", provider="search")},
        default="<p>Acme.</p>",
    )
    extractor = FakeExtractor("John Smith")
    found = ExecutiveResolver(search, extractor, sleep=lambda s: None).lookup("Acme", "acme.com")
    assert found == ExecutiveLookup(None, cacheable=False)
    assert extractor.calls == []


def test_lookup_clean_miss_is_cacheable():
    resolver = ExecutiveResolver(
        FakeSearch(default="<p>Acme.</p>"), FakeExtractor("John Smith"), sleep=lambda s: None
    )
    assert resolver.lookup("Acme", "acme.com") == ExecutiveLookup(None, cacheable=True)


def test_lookup_hit_despite_failed_query_is_cacheable():
    search = FakeSearch(
        pages={"CEO of Acme acme.com": ProviderError("reset", provider="search")},
        default=executive_markup("Acme", "John Smith"),
    )
    resolver = ExecutiveResolver(search, FakeExtractor("John Smith"), sleep=lambda s: None)
    assert resolver.lookup("Acme", "acme.com") == ExecutiveLookup("John Smith", cacheable=True)


def test_lookup_with_disabled_extractor_skips_search():
    cfg = LlmConfig(None, "gpt-test", None, 5.0, 0.0, 20)
    search = FakeSearch(default=executive_markup("Acme", "John Smith"))
    resolver = ExecutiveResolver(search, ExecutiveExtractor(cfg), sleep=lambda s: None)
    assert resolver.lookup("Acme", "acme.com") == ExecutiveLookup(None, cacheable=False)
    assert search.queries == []
