# leadgen/resolve/domain.py
from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import unquote

import tldextract

from leadgen.ingest.normalize import COMPANY_STOPWORDS, company_tokens

log = logging.getLogger(__name__)

# Bump when resolver logic meaningfully changes
RESOLVER_VERSION = "domain.3"

# Public Suffix handling: use bundled list only (no network fetch)
_EXTRACT = tldextract.TLDExtract(cache_dir=False, suffix_list_urls=None)

# Large general-purpose platforms that show up in every results page but are
# never a company's own site. Matched on the registrable label so regional
# variants (google.co.uk, amazon.de) are covered too.
DENY_LABELS = frozenset(
    {
        # search engines
        "google",
        "bing",
        "yahoo",
        "duckduckgo",
        "baidu",
        "yandex",
        "ask",
        # search/CDN plumbing
        "gstatic",
        "googleusercontent",
        "googleapis",
        "googlesyndication",
        "doubleclick",
        "schema",
        "w3",
        # social networks
        "linkedin",
        "facebook",
        "twitter",
        "instagram",
        "youtube",
        "tiktok",
        "pinterest",
        "reddit",
        "threads",
        # marketplaces
        "amazon",
        "ebay",
        "alibaba",
        "aliexpress",
        "etsy",
        "walmart",
        # wikis / directories
        "wikipedia",
        "wikimedia",
        "wikidata",
        "fandom",
        "crunchbase",
        "bloomberg",
        "glassdoor",
        "indeed",
        "zoominfo",
        "yelp",
    }
)

DENY_DOMAINS = frozenset({"x.com", "t.co", "youtu.be", "fb.com", "wa.me"})

_URL_HOST_RE = re.compile(r"https?://(?:www\d*\.)?([a-z0-9][a-z0-9.-]*\.[a-z]{2,})", re.IGNORECASE)
_BARE_WWW_RE = re.compile(r"(?<![\w.-])www\d*\.([a-z0-9][a-z0-9.-]*\.[a-z]{2,})", re.IGNORECASE)


class SearchLike(Protocol):
    def search(self, query: str, *, num: int = 20) -> str: ...


@dataclass(frozen=True, slots=True)
class Decision:
    chosen: str | None  # registrable domain, lowercase
    reason: str
    candidates: tuple[str, ...] = field(default=())


def registrable(host: str) -> str | None:
    """
    Collapse any subdomain to the registrable domain (apex),
    e.g. blog.acme.co.uk -> acme.co.uk. Returns None for hosts without a
    known public suffix.
    """
    host = host.strip().lower().rstrip(".")
    ext = _EXTRACT(host)
    if not ext.suffix or not ext.domain:
        return None
    return f"{ext.domain}.{ext.suffix}"


def _label(domain: str) -> str:
    return _EXTRACT(domain).domain.lower()


def is_denied(domain: str) -> bool:
    d = domain.strip().lower()
    apex = registrable(d) or d
    return apex in DENY_DOMAINS or _label(apex) in DENY_LABELS


def extract_candidate_domains(markup: str) -> list[str]:
    """
    Pull registrable domains out of result markup in document order
    (deduplicated). Percent-encoded redirect targets (`/url?q=https%3A...`)
    are decoded first so the wrapped site is seen, not the redirector.
    """
    if not markup:
        return []
    text = unquote(html.unescape(markup))
    hits: list[tuple[int, str]] = []
    for rx in (_URL_HOST_RE, _BARE_WWW_RE):
        for m in rx.finditer(text):
            hits.append((m.start(), m.group(1)))
    hits.sort(key=lambda h: h[0])

    seen: set[str] = set()
    out: list[str] = []
    for _pos, host in hits:
        apex = registrable(host)
        if not apex or apex in seen:
            continue
        seen.add(apex)
        out.append(apex)
    return out


def is_relevant(domain: str, tokens: list[str]) -> bool:
    label = _label(domain).replace("-", "")
    return any(tok in label for tok in tokens)


def decide(company_name: str, candidates: list[str]) -> Decision:
    """
    Keep the first non-denylisted candidate whose domain label shares a
    token with the normalized company name.
    """
    tokens = company_tokens(company_name)
    allowed = [d for d in candidates if not is_denied(d)]
    if not tokens:
        return Decision(chosen=None, reason="no_company_tokens", candidates=tuple(allowed))
    for d in allowed:
        if is_relevant(d, tokens):
            return Decision(chosen=d, reason="token_match", candidates=tuple(allowed))
    reason = "no_relevant_candidate" if allowed else "no_candidates"
    return Decision(chosen=None, reason=reason, candidates=tuple(allowed))


class DomainResolver:
    """
    Company display name → registered domain (or None when nothing fits).

    Only provider failures raise (ProviderError from the search client);
    an empty or irrelevant results page is a normal "not found".
    """

    def __init__(self, search: SearchLike, *, num_results: int = 20) -> None:
        self.search = search
        self.num_results = num_results

    def query_for(self, company_name: str) -> str:
        return f'"{company_name.strip()}" website'

    def resolve_decision(self, company_name: str) -> Decision:
        name = (company_name or "").strip()
        if not name:
            return Decision(chosen=None, reason="empty_company")
        markup = self.search.search(self.query_for(name), num=self.num_results)
        dec = decide(name, extract_candidate_domains(markup))
        log.info(
            "domain decision (%s) company=%r chosen=%r reason=%s candidates=%d",
            RESOLVER_VERSION,
            name,
            dec.chosen,
            dec.reason,
            len(dec.candidates),
        )
        return dec

    def resolve(self, company_name: str) -> str | None:
        return self.resolve_decision(company_name).chosen


__all__ = [
    "RESOLVER_VERSION",
    "DENY_LABELS",
    "DENY_DOMAINS",
    "COMPANY_STOPWORDS",
    "Decision",
    "DomainResolver",
    "company_tokens",
    "decide",
    "extract_candidate_domains",
    "is_denied",
    "is_relevant",
    "registrable",
]
