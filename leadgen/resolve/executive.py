# leadgen/resolve/executive.py
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from leadgen.exceptions import ProviderError, RateLimitedError
from leadgen.extract.executive import relevant_text
from leadgen.resolve.domain import SearchLike

log = logging.getLogger(__name__)

# Below this much narrowed text the model is not consulted
MIN_TEXT_CHARS = 100
# Stop issuing further queries once this much text has been collected
ENOUGH_TEXT_CHARS = 400


class ExtractorLike(Protocol):
    def extract(self, company: str, domain: str, text: str) -> str: ...


@dataclass(frozen=True)
class ExecutiveLookup:
    name: str | None
    # False when the miss came from a misconfiguration or a failed query
    cacheable: bool = True


def build_queries(company: str, domain: str) -> list[str]:
    company = (company or "").strip()
    queries: list[str] = []
    if company:
        queries += [
            f"CEO of {company} {domain}",
            f"CEO of {company}",
            f"{company} leadership",
            f"{company} chief executive officer",
            f"{company} president founder",
            f'"{company}" CEO site:{domain}',
        ]
    else:
        queries += [
            f"CEO of {domain}",
            f"site:{domain} CEO",
            f"{domain} chief executive",
        ]
    queries += [f'"{domain}" CEO president', f'"{domain}" leadership team']
    return queries


class ExecutiveResolver:
    """
    (company, domain) → validated executive full name, or None.

    Search queries are tried in order, keeping the richest narrowed text.
    A single failed query is skipped; a rate-limited provider stops the
    loop and propagates, as does the last error when every query failed.
    """

    def __init__(
        self,
        search: SearchLike,
        extractor: ExtractorLike,
        *,
        query_delay_seconds: float = 1.0,
        num_results: int = 15,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.search = search
        self.extractor = extractor
        self.query_delay_seconds = query_delay_seconds
        self.num_results = num_results
        self._sleep = sleep

    def _gather(self, company: str, domain: str) -> tuple[str, int]:
        queries = build_queries(company, domain)
        best = ""
        errors = 0
        last_error: ProviderError | None = None
        for i, query in enumerate(queries):
            if i and self.query_delay_seconds > 0:
                self._sleep(self.query_delay_seconds)
            try:
                markup = self.search.search(query, num=self.num_results)
            except RateLimitedError:
                raise
            except ProviderError as exc:
                errors += 1
                last_error = exc
                log.warning(
                    "executive search query failed",
                    extra={"query": query, "exc": str(exc)},
                )
                continue
            text = relevant_text(markup, company)
            if len(text) > len(best):
                best = text
            if len(best) >= ENOUGH_TEXT_CHARS:
                break

        if errors == len(queries) and last_error is not None:
            raise last_error
        return best, errors

    def gather_text(self, company: str, domain: str) -> str:
        return self._gather(company, domain)[0]

    def lookup(self, company: str, domain: str) -> ExecutiveLookup:
        """
        Like resolve(), but also says whether a miss may be negatively cached.

        A miss is not cacheable when the model is not configured or when any
        search query failed.
        """
        if not getattr(self.extractor, "enabled", True):
            log.warning(
                "executive extractor disabled; lookup skipped",
                extra={"company": company, "domain": domain},
            )
            return ExecutiveLookup(None, cacheable=False)

        text, errors = self._gather(company, domain)
        if len(text) < MIN_TEXT_CHARS:
            log.info(
                "insufficient executive search text",
                extra={"company": company, "domain": domain, "chars": len(text), "errors": errors},
            )
            return ExecutiveLookup(None, cacheable=errors == 0)
        name = self.extractor.extract(company, domain, text) or None
        return ExecutiveLookup(name, cacheable=name is not None or errors == 0)

    def resolve(self, company: str, domain: str) -> str | None:
        return self.lookup(company, domain).name


__all__ = [
    "ExecutiveResolver",
    "ExecutiveLookup",
    "build_queries",
    "MIN_TEXT_CHARS",
    "ENOUGH_TEXT_CHARS",
]
