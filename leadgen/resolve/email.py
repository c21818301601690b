# leadgen/resolve/email.py
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from leadgen.generate.patterns import generate_candidates
from leadgen.verify.provider import VerifyResult

log = logging.getLogger(__name__)


class VerifierLike(Protocol):
    def verify(self, email: str) -> VerifyResult: ...


@dataclass(frozen=True)
class EmailMatch:
    email: str
    pattern: str
    confidence: float | None
    status: str


class EmailResolver:
    """
    (first, last, domain) → first verified address in pattern-frequency
    order, or None when every pattern was tried and none verified.

    A provider error (RateLimitedError on 429/5xx, ProviderError on
    transport failure) aborts the scan and propagates to the job runner.
    """

    def __init__(
        self,
        verifier: VerifierLike,
        *,
        delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.verifier = verifier
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def resolve(self, first: str, last: str, domain: str) -> EmailMatch | None:
        candidates = generate_candidates(first, last, domain)
        if not candidates:
            log.info("no email candidates", extra={"domain": domain})
            return None

        for i, (pattern, address) in enumerate(candidates):
            if i and self.delay_seconds > 0:
                self._sleep(self.delay_seconds)
            result = self.verifier.verify(address)
            if result.valid:
                log.info(
                    "verified email found",
                    extra={"email": address, "pattern": pattern.name, "tried": i + 1},
                )
                return EmailMatch(
                    email=address,
                    pattern=pattern.name,
                    confidence=result.confidence,
                    status=result.status,
                )

        log.info("no verified email", extra={"domain": domain, "tried": len(candidates)})
        return None


__all__ = ["EmailMatch", "EmailResolver"]
