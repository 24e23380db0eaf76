"""
Error kinds and verification results.

Three failure families cross the public boundary:

- ``EncodingError``: malformed multibase, wrong element type, malformed
  N-Triples or request records.  Surfaced immediately, never retried.
- ``CryptoError``: a primitive could not do its job: a signature that
  does not open, a blinding factor that does not match, a ciphertext
  that does not decrypt, a sub-proof that cannot be built.
- ``ProtocolError``: steps taken out of order, or an optional field
  missing for the mode the caller selected.

Failed *verification* is not an exception.  Every verify-style
operation returns a ``VerifyResult`` so callers can branch on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class VcProofsError(Exception):
    """Base class for every error raised by this package."""


class EncodingError(VcProofsError, ValueError):
    """Malformed encoded or structured input."""


class CryptoError(VcProofsError):
    """A cryptographic primitive failed for the current call."""


class ProtocolError(VcProofsError):
    """Out-of-order step or inconsistent mode selection."""


# ── verification results ───────────────────────────────────────────────

class FailureReason(Enum):
    """Why a verification returned ``verified=False``."""

    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED_PROOF = "malformed_proof"
    UNKNOWN_VERIFICATION_METHOD = "unknown_verification_method"
    MISSING_PROOF_OF_KNOWLEDGE = "missing_proof_of_knowledge"
    INVALID_PROOF_OF_KNOWLEDGE = "invalid_proof_of_knowledge"
    MISSING_CHALLENGE_IN_REQUEST = "missing_challenge_in_request"
    MISSING_CHALLENGE_IN_PRESENTATION = "missing_challenge_in_presentation"
    MISMATCHED_CHALLENGE = "mismatched_challenge"
    MISSING_DOMAIN_IN_REQUEST = "missing_domain_in_request"
    MISSING_DOMAIN_IN_PRESENTATION = "missing_domain_in_presentation"
    MISMATCHED_DOMAIN = "mismatched_domain"
    MISSING_VERIFYING_KEY = "missing_verifying_key"
    INVALID_PREDICATE_PROOF = "invalid_predicate_proof"
    MISSING_OPENER_KEY = "missing_opener_key"
    MISSING_ENCRYPTED_UID = "missing_encrypted_uid"
    INVALID_PRESENTATION_PROOF = "invalid_presentation_proof"


class VerificationFailure(VcProofsError):
    """
    Internal signal for a failed check.

    Raised deep inside verification code and converted into a
    ``VerifyResult`` by the public verify functions; never escapes them.
    """

    def __init__(self, reason: FailureReason, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail or reason.value


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a verify-style operation."""

    verified: bool
    error: Optional[str] = None
    reason: Optional[FailureReason] = None

    @classmethod
    def ok(cls) -> VerifyResult:
        return cls(verified=True)

    @classmethod
    def failed(cls, failure: VerificationFailure) -> VerifyResult:
        return cls(
            verified=False, error=failure.detail, reason=failure.reason,
        )

    def to_dict(self) -> dict:
        out: dict = {"verified": self.verified}
        if self.error is not None:
            out["error"] = self.error
        return out

    def __bool__(self) -> bool:
        return self.verified
