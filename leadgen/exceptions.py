# leadgen/exceptions.py
"""
Shared exception classes used across the pipeline.

Not-found outcomes (no domain, no executive, no deliverable email) are
plain return values and never raise. Everything below is an actual failure.
"""

from __future__ import annotations


class LeadgenError(Exception):
    """Base class for pipeline errors."""


class RetryableError(LeadgenError):
    """
    A failure the orchestrator should retry with backoff.

    The job is re-queued until its attempt limit is reached, after which
    the lead's stage is marked failed.
    """


class ProviderError(RetryableError):
    """
    Raised when an external provider (search, language model, email verifier)
    cannot be reached or answers with an error.

    Examples:
        - connection failures and timeouts
        - non-2xx responses the client cannot interpret
    """

    def __init__(self, message: str, *, provider: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class RateLimitedError(ProviderError):
    """
    Raised when a provider answers 429 or 5xx.

    Callers must stop issuing further requests to that provider for the
    current job rather than continuing against a failing service.
    """


class PersistenceError(RetryableError):
    """Raised when a lead's state could not be written back to the store."""


class InvalidJobError(LeadgenError):
    """Raised when a job payload is missing required fields. Not retryable."""


__all__ = [
    "LeadgenError",
    "RetryableError",
    "ProviderError",
    "RateLimitedError",
    "PersistenceError",
    "InvalidJobError",
]
