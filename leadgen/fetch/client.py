# leadgen/fetch/client.py
from __future__ import annotations

import logging
from urllib.parse import quote_plus

import httpx
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from leadgen.config import SearchConfig
from leadgen.exceptions import ProviderError, RateLimitedError

log = logging.getLogger(__name__)

PROVIDER = "search"
SEARCH_ENGINE_URL = "https://www.google.com/search?q={q}&num={num}"

# Cap on the markup we hand to extractors (bytes of text, not HTML nodes)
MAX_BODY_CHARS = 2_000_000


def search_url(query: str, *, num: int = 20) -> str:
    return SEARCH_ENGINE_URL.format(q=quote_plus(query), num=int(num))


class SearchClient:
    """
    Small wrapper around httpx for the web-search / content-fetch provider.

    The provider proxies a search-engine results page: we POST the target
    URL and receive the raw markup back. Transport errors are retried a
    bounded number of times inside the call; anything still failing is
    raised as ProviderError (429/5xx as RateLimitedError) for the job
    runner to retry later.
    """

    def __init__(self, cfg: SearchConfig, *, client: httpx.Client | None = None) -> None:
        self.cfg = cfg
        headers = {"Content-Type": "application/json"}
        if cfg.api_key:
            headers["Authorization"] = f"Bearer {cfg.api_key}"
        self._client = client or httpx.Client(
            headers=headers,
            timeout=httpx.Timeout(cfg.timeout_seconds, connect=min(cfg.timeout_seconds, 10.0)),
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, payload: dict) -> httpx.Response:
        retrying = Retrying(
            reraise=True,
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(max(1, self.cfg.max_retries + 1)),
            wait=wait_random_exponential(multiplier=0.5, max=5),
        )
        for attempt in retrying:
            with attempt:
                return self._client.post(self.cfg.api_url, json=payload)
        raise AssertionError("unreachable")  # pragma: no cover

    def search(self, query: str, *, num: int = 20) -> str:
        """
        Run one search and return the raw result markup ("" if the provider
        returned an empty body).
        """
        payload = {
            "url": search_url(query, num=num),
            "zone": self.cfg.zone,
            "country": self.cfg.country,
            "format": "raw",
        }
        try:
            resp = self._post(payload)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"search timed out: {exc}", provider=PROVIDER) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"search transport error: {type(exc).__name__}: {exc}", provider=PROVIDER
            ) from exc

        status = resp.status_code
        if status == 429 or status >= 500:
            raise RateLimitedError(
                f"search provider answered {status}", provider=PROVIDER, status_code=status
            )
        if status >= 400:
            raise ProviderError(
                f"search provider answered {status}", provider=PROVIDER, status_code=status
            )

        body = resp.text or ""
        log.debug("search ok", extra={"query": query, "chars": len(body)})
        return body[:MAX_BODY_CHARS]


__all__ = ["SearchClient", "search_url", "SEARCH_ENGINE_URL"]
