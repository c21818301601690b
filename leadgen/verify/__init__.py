"""Email-verification provider client."""

from .provider import VerifierClient, VerifyResult

__all__ = ["VerifierClient", "VerifyResult"]
