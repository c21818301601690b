"""
Executive-name extraction from search-result text.

Two pieces:
  - relevant_text(): visible text of a results page narrowed to sentences
    that mention an executive title (and, when possible, the company);
  - ExecutiveExtractor: one chat completion that must answer with a full
    name or NOT_FOUND, followed by clean_executive_name() which rejects
    anything that is not plausibly a personal name.

Validation rejections are "not found" (empty string), never errors. Errors
talking to the model are raised as ProviderError / RateLimitedError.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import openai
from bs4 import BeautifulSoup
from openai import OpenAI

from leadgen.config import LlmConfig
from leadgen.exceptions import ProviderError, RateLimitedError
from leadgen.ingest.normalize import company_tokens

log = logging.getLogger(__name__)

PROVIDER = "llm"
NOT_FOUND_TOKEN = "NOT_FOUND"

EXECUTIVE_KEYWORDS = (
    "ceo",
    "chief executive",
    "chief executive officer",
    "president",
    "founder",
    "co-founder",
    "executive director",
    "managing director",
    "managing partner",
    "chairman",
    "executive chairman",
)

# Substrings that mark a refusal/explanation instead of a name
NEGATIVE_PHRASES = (
    "there is no",
    "no information",
    "no specific",
    "not found",
    "not_found",
    "no results",
    "not enough",
    "unfortunately",
    "the visible text",
    "does not contain",
    "no ceo",
    "no president",
    "cannot determine",
    "unable to",
    "not available",
    "unknown",
    "the highest-ranking",
    "visible text provided",
    "given text",
)

# Honorific / suffix / title tokens removed before the shape check
STRIP_TOKENS = frozenset(
    {
        "jr",
        "sr",
        "ii",
        "iii",
        "iv",
        "dr",
        "mr",
        "ms",
        "mrs",
        "ceo",
        "president",
        "chief",
        "executive",
        "officer",
        "director",
        "founder",
        "chairman",
    }
)

MIN_NAME_TOKENS = 2
MAX_NAME_TOKENS = 4
MIN_TOKEN_LEN = 2
MAX_TOKEN_LEN = 20

MAX_SENTENCES = 12
MAX_FALLBACK_SENTENCES = 20
FALLBACK_TEXT_CHARS = 2000

_NAME_RE = re.compile(r"^[A-Za-z\s'-]+$")
_TOKEN_RE = re.compile(r"^[A-Za-z'-]+$")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]")
_QUOTES = "'\"“”‘’`[](){}<>"


# ---------------------------------------------------------------------------
# Search text narrowing
# ---------------------------------------------------------------------------


def visible_text(markup: str) -> str:
    """Markup → whitespace-collapsed visible text (scripts/styles dropped)."""
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return " ".join(soup.get_text(" ").split())


def _has_keyword(sentence_lower: str) -> bool:
    return any(k in sentence_lower for k in EXECUTIVE_KEYWORDS)


def relevant_text(markup: str, company: str | None) -> str:
    """
    Sentences mentioning an executive title and the company. Falls back to
    title-only sentences, then to the head of the page text.
    """
    text = visible_text(markup)
    if not text:
        return ""

    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(text)]
    sentences = [s for s in sentences if 15 < len(s) < 500]
    with_title = [s for s in sentences if _has_keyword(s.lower())]

    company_lower = (company or "").strip().lower()
    words = [w for w in company_tokens(company or "") if len(w) > 3]
    if company_lower:
        scoped = [
            s
            for s in with_title
            if company_lower in s.lower() or any(w in s.lower() for w in words)
        ]
        if scoped:
            return ". ".join(scoped[:MAX_SENTENCES])

    if with_title:
        return ". ".join(with_title[:MAX_FALLBACK_SENTENCES])
    return text[:FALLBACK_TEXT_CHARS]


# ---------------------------------------------------------------------------
# Output validation
# ---------------------------------------------------------------------------


def clean_executive_name(raw: str | None) -> str:
    """
    Validate a model answer as a personal full name.

    Returns the cleaned name, or "" when the answer is a refusal, has the
    wrong shape, or contains anything but letters/apostrophes/hyphens.
    """
    if not raw:
        return ""
    s = " ".join(str(raw).split())
    if not s:
        return ""

    lower = s.lower()
    if any(p in lower for p in NEGATIVE_PHRASES):
        return ""

    s = s.strip(_QUOTES + " ")
    tokens: list[str] = []
    for tok in s.split():
        tok = tok.strip(_QUOTES + ".,;:")
        if not tok:
            continue
        if tok.lower() in STRIP_TOKENS:
            continue
        tokens.append(tok)

    if not (MIN_NAME_TOKENS <= len(tokens) <= MAX_NAME_TOKENS):
        return ""
    for tok in tokens:
        if not (MIN_TOKEN_LEN <= len(tok) <= MAX_TOKEN_LEN):
            return ""
        if not tok[0].isupper() or not _TOKEN_RE.match(tok):
            return ""

    name = " ".join(tokens)
    if not _NAME_RE.match(name):
        return ""
    return name


# ---------------------------------------------------------------------------
# Model call
# ---------------------------------------------------------------------------


def build_prompt(company: str, domain: str, text: str) -> str:
    subject = company or domain
    return f"""You are given visible text from web search results about a company's top executive.

- Company: {subject}
- Domain: {domain}

Return ONLY the full name of the highest-ranking executive of this exact company (CEO, President, Managing Partner, Executive Director, Chairman, or Founder).

Rules:
- Ignore people from other companies
- Return the person's full name only (first and last name)
- If you cannot find a specific person's name, return {NOT_FOUND_TOKEN}
- Do not return explanations, titles, or sentences

Visible text:
{text}

Output: just the full name or {NOT_FOUND_TOKEN}"""


def _get_client(cfg: LlmConfig) -> Any | None:
    """Returns None when no API key is configured."""
    if not cfg.api_key:
        return None
    return OpenAI(
        api_key=cfg.api_key,
        base_url=cfg.api_base or None,
        timeout=cfg.timeout_seconds,
        max_retries=0,
    )


class ExecutiveExtractor:
    def __init__(self, cfg: LlmConfig, *, client: Any | None = None) -> None:
        self.cfg = cfg
        self._client = client if client is not None else _get_client(cfg)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _complete(self, prompt: str) -> str:
        try:
            completion = self._client.chat.completions.create(
                model=self.cfg.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.cfg.temperature,
                max_tokens=self.cfg.max_tokens,
            )
        except openai.RateLimitError as exc:
            raise RateLimitedError(
                f"language model rate limited: {exc}", provider=PROVIDER, status_code=429
            ) from exc
        except openai.APIStatusError as exc:
            cls = RateLimitedError if exc.status_code >= 500 else ProviderError
            raise cls(
                f"language model answered {exc.status_code}",
                provider=PROVIDER,
                status_code=exc.status_code,
            ) from exc
        except openai.APIError as exc:
            # APIConnectionError / APITimeoutError and friends
            raise ProviderError(
                f"language model error: {type(exc).__name__}: {exc}", provider=PROVIDER
            ) from exc
        return (completion.choices[0].message.content or "").strip()

    def extract(self, company: str, domain: str, text: str) -> str:
        """
        Ask the model for the executive's full name. Returns "" when the
        model answers NOT_FOUND or its answer fails validation.
        """
        if not self.enabled:
            log.warning("no language model configured; skipping executive extraction")
            return ""
        raw = self._complete(build_prompt(company, domain, text))
        name = clean_executive_name(raw)
        log.info(
            "executive extraction",
            extra={"company": company, "domain": domain, "raw": raw[:120], "executive": name},
        )
        return name


__all__ = [
    "EXECUTIVE_KEYWORDS",
    "NEGATIVE_PHRASES",
    "NOT_FOUND_TOKEN",
    "ExecutiveExtractor",
    "build_prompt",
    "clean_executive_name",
    "relevant_text",
    "visible_text",
]
