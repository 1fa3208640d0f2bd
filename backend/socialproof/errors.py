"""
SocialProofPass — error taxonomy.

Every error raised towards a caller carries the HTTP status it maps to and a
short `error` title; the gateway turns them into `{error, message}` bodies.
"""

from __future__ import annotations


class SocialProofError(RuntimeError):
    status_code = 500
    error       = "Internal error"

    def __init__(self, message: str = "", details: str = ""):
        super().__init__(message or self.error)
        self.details = details


class UnknownProvider(SocialProofError):
    status_code = 400
    error       = "Invalid provider"

    def __init__(self, provider):
        super().__init__(f"Provider '{provider}' is not supported")
        self.provider = provider


class MisconfiguredProvider(SocialProofError):
    status_code = 500
    error       = "Provider not configured"

    def __init__(self, provider: str):
        upper = provider.upper()
        super().__init__(
            f"Please configure {provider} credentials in your .env file. "
            f"Get them from https://dev.reclaimprotocol.org/",
            details=(
                f"Missing or placeholder values for {upper}_APP_ID, "
                f"{upper}_APP_SECRET, or {upper}_PROVIDER_ID"
            ),
        )
        self.provider = provider


class InvalidRequest(SocialProofError):
    status_code = 400
    error       = "Invalid request data"


class InvalidProof(SocialProofError):
    status_code = 400
    error       = "Invalid proof"


class ProofDecodeError(SocialProofError):
    status_code = 500
    error       = "Failed to process proof"


class OracleError(SocialProofError):
    status_code = 500
    error       = "Failed to generate request config"


class ServerMisconfigured(SocialProofError):
    status_code = 500
    error       = "Server configuration incomplete"


class ChainError(SocialProofError):
    status_code = 500
    error       = "Chain operation failed"


class EventParseFailure(SocialProofError):
    """Mint event missing or unreadable. Callers degrade, never surface it."""
    error = "Event parse failure"


class ContractRevert(Exception):
    """A registry call reverted. State is left exactly as before the call."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
