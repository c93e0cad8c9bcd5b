from __future__ import annotations

from typing import Any, Dict, Optional


class RelayerError(Exception):
    """
    Base class for every error the relayer surfaces to a caller.

    Each subclass carries a stable machine-readable `reason` and the HTTP
    status the API layer maps it to. Extra keyword details end up in the
    error body next to the reason and message.
    """

    reason: str = "internal-error"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, *, reason: Optional[str] = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason
        self.details: Dict[str, Any] = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"reason": self.reason, "message": self.message}
        payload.update(self.details)
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(RelayerError):
    reason = "validation-error"
    http_status = 400


class InsufficientBalance(RelayerError):
    reason = "insufficient-balance"
    http_status = 400


class SponsorUndercapitalized(RelayerError):
    reason = "sponsor-undercapitalized"
    http_status = 503
    retryable = True


class SafetyLimitExceeded(RelayerError):
    reason = "safety-limit-exceeded"
    http_status = 429

    def __init__(self, message: str, *, limit: str, usage: int, cap: int) -> None:
        super().__init__(message, limit=limit, usage=usage, cap=cap)
        self.limit = limit
        self.usage = usage
        self.cap = cap


class SignatureInvalid(RelayerError):
    reason = "signature-invalid"
    http_status = 401


class AddressMismatch(SignatureInvalid):
    reason = "address-mismatch"


class UpstreamUnavailable(RelayerError):
    reason = "upstream-unavailable"
    http_status = 503
    retryable = True


class SubmissionFailed(RelayerError):
    reason = "submission-failed"
    http_status = 502

    def __init__(self, message: str, *, chain_status: str, **details: Any) -> None:
        super().__init__(message, chain_status=chain_status, **details)
        self.chain_status = chain_status


class PersistenceError(RelayerError):
    """Raised inside the persistence layer only; the ledger absorbs it."""
    reason = "persistence-error"
