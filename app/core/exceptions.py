"""
Error taxonomy for the signing and anchoring protocol.

Every failure is terminal for the current attempt; nothing here is retried
automatically. ``retryable`` only tells the caller whether a brand-new
attempt may succeed.
"""

from __future__ import annotations

from typing import Any


class InklessError(Exception):
    """Base class for all protocol errors."""

    code = "INKLESS_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class FingerprintError(InklessError):
    """The document bytes could not be read."""

    code = "FINGERPRINT_FAILED"


class KeyGenerationError(InklessError):
    """Entropy or the signing backend is unavailable."""

    code = "KEY_GENERATION_FAILED"


class SigningError(InklessError):
    """The backend failed to sign or the key material is malformed."""

    code = "SIGNING_FAILED"


class SubmissionNetworkError(InklessError):
    """The relay could not be reached."""

    code = "SUBMISSION_NETWORK_ERROR"
    retryable = True


class LedgerError(InklessError):
    """The ledger rejected the write or did not answer in time."""

    code = "LEDGER_ERROR"


class LedgerUnavailableError(LedgerError):
    """A ledger read failed; unlike a not-found verdict, this can be retried."""

    code = "LEDGER_UNAVAILABLE"
    retryable = True


class NotFoundError(InklessError):
    """No anchor exists for the requested key."""

    code = "NOT_FOUND"


class PolicyExcludedError(InklessError):
    """The document category may not be signed electronically."""

    code = "POLICY_EXCLUDED"

    def __init__(self, category: str, reason: str | None = None) -> None:
        super().__init__(
            reason or f"Category '{category}' is excluded from electronic signing",
            details={"category": category},
        )
        self.category = category


class AnchorStateError(InklessError):
    """An anchor record was asked to leave a terminal status."""

    code = "ANCHOR_STATE_INVALID"


class WorkflowStateError(InklessError):
    """A workflow event arrived in a state that does not accept it."""

    code = "WORKFLOW_STATE_INVALID"


_ERRORS_BY_CODE: dict[str, type[InklessError]] = {
    cls.code: cls
    for cls in (
        FingerprintError,
        KeyGenerationError,
        SigningError,
        SubmissionNetworkError,
        LedgerError,
        LedgerUnavailableError,
        NotFoundError,
        AnchorStateError,
        WorkflowStateError,
    )
}


def error_from_payload(payload: dict[str, Any], *, default: type[InklessError]) -> InklessError:
    """Rebuild a typed error from a relay error body (``detail`` of an HTTP error)."""
    code = str(payload.get("error") or "")
    message = str(payload.get("message") or "Relay request failed")
    details = payload.get("details")
    details = details if isinstance(details, dict) else {}
    if code == PolicyExcludedError.code:
        return PolicyExcludedError(str(details.get("category", "")), message)
    cls = _ERRORS_BY_CODE.get(code, default)
    return cls(message, details=details)
