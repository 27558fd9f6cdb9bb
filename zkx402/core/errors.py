"""
Error taxonomy for the zkx402 access protocol.

Every error carries the wire code and HTTP status the API returns for it, so
handlers never translate exceptions by hand.

Registration failures (ProofTimeout, ProofFailed, HashMismatch) are terminal
for the content id they were raised for: the producer must upload again.
"""

from typing import Any, Optional


class AccessProtocolError(Exception):
    """Base class for protocol errors surfaced to callers."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", detail: Optional[Any] = None):
        super().__init__(message or self.code)
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"error": self.code}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class InvalidInput(AccessProtocolError):
    """Required fields missing or payload does not match its schema."""

    code = "missing_fields"
    status_code = 400


class NotFound(AccessProtocolError):
    """Unknown content id."""

    code = "not_found"
    status_code = 404


class ProofNotCompleted(AccessProtocolError):
    """The prover did not deliver a completed result."""

    code = "proof_not_completed"
    status_code = 400


class ProofTimeout(ProofNotCompleted):
    """Proof wait expired before the prover reported."""

    failure = "proof_timeout"


class ProofFailed(ProofNotCompleted):
    """Prover reported a non-completed terminal status."""

    failure = "proof_failed"


class HashMismatch(AccessProtocolError):
    """Prover journal digest does not match the claimed content hash."""

    code = "contenthash_mismatch"
    status_code = 400
    failure = "contenthash_mismatch"


class ContentUnverified(AccessProtocolError):
    """Access attempted before verification completed."""

    code = "content_not_verified"
    status_code = 400


class IdentityUnverifiable(AccessProtocolError):
    """
    Signature or credential failure.

    Never reaches the caller: the gateway converts it into a public-tier
    challenge.
    """

    code = "identity_unverifiable"
    status_code = 402


class InternalError(AccessProtocolError):
    """Unexpected collaborator failure."""

    code = "internal_error"
    status_code = 500


# Failure codes persisted on a ContentRecord, mapped back to their exception.
TERMINAL_FAILURES = {
    ProofTimeout.failure: ProofTimeout,
    ProofFailed.failure: ProofFailed,
    HashMismatch.failure: HashMismatch,
}
