# tests/test_provider_clients.py
from __future__ import annotations

import json

import httpx
import pytest
import respx
from httpx import Response

from leadgen.config import SearchConfig, VerifierConfig
from leadgen.exceptions import ProviderError, RateLimitedError
from leadgen.fetch.client import SearchClient, search_url
from leadgen.verify.provider import VerifierClient, interpret_payload

SEARCH_URL = "https://search.test/request"
VERIFY_HOST = "verify.test"
VERIFY_URL = f"https://{VERIFY_HOST}/v1/email/verify"


def _search_cfg(**overrides) -> SearchConfig:
    base = dict(
        api_url=SEARCH_URL,
        api_key="k",
        zone="zone1",
        country="US",
        timeout_seconds=5.0,
        max_retries=0,
        query_delay_seconds=0.0,
    )
    base.update(overrides)
    return SearchConfig(**base)


def _verify_cfg() -> VerifierConfig:
    return VerifierConfig(api_url=VERIFY_URL, api_key="vk", timeout_seconds=5.0, delay_seconds=0.0)


# ---------------------------------------------------------------------------
# Search client
# ---------------------------------------------------------------------------


@respx.mock
def test_search_posts_engine_url_and_returns_markup():
    route = respx.post(SEARCH_URL).mock(return_value=Response(200, text="<html>acme.com</html>"))
    client = SearchClient(_search_cfg())
    try:
        assert client.search('"Acme" website', num=10) == "<html>acme.com</html>"
    finally:
        client.close()

    sent = json.loads(route.calls.last.request.content)
    assert sent["url"] == search_url('"Acme" website', num=10)
    assert sent["zone"] == "zone1"
    assert route.calls.last.request.headers["Authorization"] == "Bearer k"


@respx.mock
def test_search_rate_limit_and_server_errors():
    respx.post(SEARCH_URL).mock(side_effect=[Response(429), Response(502)])
    client = SearchClient(_search_cfg())
    with pytest.raises(RateLimitedError) as ei:
        client.search("q")
    assert ei.value.status_code == 429
    with pytest.raises(RateLimitedError):
        client.search("q")


@respx.mock
def test_search_client_error_is_provider_error():
    respx.post(SEARCH_URL).mock(return_value=Response(403))
    with pytest.raises(ProviderError) as ei:
        SearchClient(_search_cfg()).search("q")
    assert not isinstance(ei.value, RateLimitedError)


@respx.mock
def test_search_retries_transport_errors_then_succeeds():
    route = respx.post(SEARCH_URL).mock(
        side_effect=[httpx.ConnectError("reset"), Response(200, text="ok")]
    )
    assert SearchClient(_search_cfg(max_retries=1)).search("q") == "ok"
    assert route.call_count == 2


@respx.mock
def test_search_timeout_is_provider_error():
    respx.post(SEARCH_URL).mock(side_effect=httpx.ReadTimeout("slow"))
    with pytest.raises(ProviderError):
        SearchClient(_search_cfg()).search("q")


# ---------------------------------------------------------------------------
# Verifier client
# ---------------------------------------------------------------------------


def test_interpret_payload_statuses():
    assert interpret_payload("a@x.com", {"status": "valid"}).valid
    assert interpret_payload("a@x.com", {"status": "Deliverable"}).valid
    assert interpret_payload("a@x.com", {"status": "risky", "deliverable": True}).valid
    assert not interpret_payload("a@x.com", {"status": "invalid"}).valid
    r = interpret_payload("a@x.com", ["not", "a", "dict"])
    assert (r.valid, r.status) == (False, "unknown")
    assert interpret_payload("a@x.com", {"status": ""}).reason == "Invalid response format"


@respx.mock
def test_verify_sends_email_and_key():
    route = respx.get(host=VERIFY_HOST, path="/v1/email/verify").mock(
        return_value=Response(200, json={"status": "valid", "confidence": "87", "reason": "ok"})
    )
    result = VerifierClient(_verify_cfg()).verify("jane@acme.com")

    assert result.valid
    assert result.confidence == 87.0
    params = route.calls.last.request.url.params
    assert params["email"] == "jane@acme.com"
    assert params["apiKey"] == "vk"


@pytest.mark.parametrize("status", [429, 500, 503])
@respx.mock
def test_verify_rate_limit_and_server_errors_raise(status):
    respx.get(host=VERIFY_HOST).mock(return_value=Response(status))
    with pytest.raises(RateLimitedError):
        VerifierClient(_verify_cfg()).verify("jane@acme.com")


@respx.mock
def test_verify_other_client_errors_mean_not_valid():
    respx.get(host=VERIFY_HOST).mock(return_value=Response(400, json={"error": "bad email"}))
    result = VerifierClient(_verify_cfg()).verify("jane@acme.com")
    assert not result.valid
    assert result.status == "error"


@respx.mock
def test_verify_timeout_is_provider_error():
    respx.get(host=VERIFY_HOST).mock(side_effect=httpx.ConnectTimeout("slow"))
    with pytest.raises(ProviderError):
        VerifierClient(_verify_cfg()).verify("jane@acme.com")
