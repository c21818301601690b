"""
Email-verification provider client.

Public API:

    @dataclass
    class VerifyResult:
        email: str
        valid: bool
        status: str
        confidence: float | None
        reason: str | None
        raw: dict[str, Any]

    class VerifierClient:
        def verify(self, email: str) -> VerifyResult

Behavior:
  - One GET per address (`?email=...&apiKey=...`), bounded by the configured
    timeout.
  - "valid" means status `valid`/`deliverable`, or `deliverable: true`.
  - 429 and 5xx raise RateLimitedError; the caller must stop scanning.
  - Transport failures and timeouts raise ProviderError (retryable).
  - Any other 4xx is an answer about this one address: it comes back as
    `valid=False, status="error"` and the caller moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from leadgen.config import VerifierConfig
from leadgen.exceptions import ProviderError, RateLimitedError

log = logging.getLogger(__name__)

PROVIDER = "verifier"

_VALID_STATUSES = frozenset({"valid", "deliverable"})


@dataclass
class VerifyResult:
    email: str
    valid: bool
    status: str
    confidence: float | None = None
    reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def _to_confidence(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def interpret_payload(email: str, data: Any) -> VerifyResult:
    """Map a provider JSON body onto VerifyResult."""
    if not isinstance(data, dict):
        return VerifyResult(email, False, "unknown", reason="Invalid response format", raw={"raw": data})

    raw_status = data.get("status")
    if raw_status is None or str(raw_status).strip() == "":
        return VerifyResult(email, False, "unknown", reason="Invalid response format", raw=data)

    status = str(raw_status).strip()
    valid = status.lower() in _VALID_STATUSES or data.get("deliverable") is True
    return VerifyResult(
        email=email,
        valid=valid,
        status=status,
        confidence=_to_confidence(data.get("confidence")),
        reason=data.get("reason") or None,
        raw=data,
    )


class VerifierClient:
    def __init__(self, cfg: VerifierConfig, *, client: httpx.Client | None = None) -> None:
        self.cfg = cfg
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(cfg.timeout_seconds),
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def verify(self, email: str) -> VerifyResult:
        params = {"email": email}
        if self.cfg.api_key:
            params["apiKey"] = self.cfg.api_key

        try:
            resp = self._client.get(self.cfg.api_url, params=params)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"verifier timed out: {exc}", provider=PROVIDER) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"verifier transport error: {type(exc).__name__}: {exc}", provider=PROVIDER
            ) from exc

        status = resp.status_code
        if status == 429 or status >= 500:
            raise RateLimitedError(
                f"verifier answered {status}", provider=PROVIDER, status_code=status
            )
        if status >= 400:
            log.info("verifier rejected address", extra={"email": email, "status_code": status})
            return VerifyResult(
                email=email,
                valid=False,
                status="error",
                reason=f"http_{status}",
                raw={"status_code": status},
            )

        try:
            data = resp.json()
        except ValueError:
            data = None
        result = interpret_payload(email, data)
        log.debug(
            "verifier result",
            extra={"email": email, "status": result.status, "valid": result.valid},
        )
        return result


__all__ = ["VerifyResult", "VerifierClient", "interpret_payload"]
