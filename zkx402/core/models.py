"""
Domain types shared by the registry, verifier, gateway and ledger.

Persistent records (ContentRecord, AccessGrant) are plain dataclasses; wire
payloads that arrive from callers or collaborators (IdentityAssertion,
ProvingResult) are strict pydantic models so that malformed shapes are
rejected instead of silently carried along.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ContentRecord:
    """Registered content and its verification state."""
    id: str
    reference: str
    content_hash: str
    proof_job_id: str
    verified: bool = False
    verifier_result: Optional[Dict[str, Any]] = None
    verification_error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def pending(self) -> bool:
        """True while the record can still become verified."""
        return not self.verified and self.verification_error is None

    def as_verified(self, verifier_result: Dict[str, Any]) -> "ContentRecord":
        return replace(self, verified=True, verifier_result=verifier_result)

    def as_failed(self, failure: str) -> "ContentRecord":
        return replace(self, verification_error=failure)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reference": self.reference,
            "contentHash": self.content_hash,
            "proofJobId": self.proof_job_id,
            "verified": self.verified,
            "verifierResult": self.verifier_result,
            "verificationError": self.verification_error,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AccessGrant:
    """One completed, paid delivery. Immutable once appended."""
    content_id: str
    payer: str
    method: str
    price: str
    tier: str
    timestamp: datetime = field(default_factory=utc_now)
    receipt: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contentId": self.content_id,
            "payer": self.payer,
            "method": self.method,
            "price": self.price,
            "tier": self.tier,
            "timestamp": self.timestamp.isoformat(),
            "receipt": self.receipt,
        }


@dataclass(frozen=True)
class PaymentClaim:
    """What the settlement collaborator tells us about a confirmed payment."""
    payer: str = "unknown"
    method: str = "x402"
    receipt: Optional[Any] = None


@dataclass
class ResolvedIdentity:
    """Outcome of ownership + credential verification."""
    ok: bool
    role: Optional[str] = None
    issuer: Optional[str] = None
    issuer_allowed: bool = False
    reason: Optional[str] = None
    detail: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, reason: str, detail: Optional[str] = None) -> "ResolvedIdentity":
        return cls(ok=False, reason=reason, detail=detail)


class IdentityAssertion(BaseModel):
    """
    Self-asserted identity bundle sent with an access request.

    Wire names follow the X-Proof header format (`did`, `nonce`, `signature`,
    `vcJwt`). Fields may be absent; the verifier reports them as `missing`.
    Anything that is not a string, and any unknown key, is rejected.
    """

    model_config = ConfigDict(
        extra="forbid",
        strict=True,
        frozen=True,
        populate_by_name=True,
    )

    decentralized_id: Optional[str] = Field(default=None, alias="did")
    nonce: Optional[str] = None
    signature: Optional[str] = None
    credential_token: Optional[str] = Field(default=None, alias="vcJwt")

    def missing_fields(self) -> List[str]:
        """Wire names of the fields that are absent or blank."""
        missing = []
        for name, info in type(self).model_fields.items():
            value = getattr(self, name)
            if not value or not value.strip():
                missing.append(info.alias or name)
        return missing


class ProvingResult(BaseModel):
    """Result report of an external proof job."""

    model_config = ConfigDict(extra="allow")

    status: str
    journal: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @field_validator("journal", mode="before")
    @classmethod
    def _decode_journal(cls, value: Any) -> Any:
        # Provers may ship the journal as a JSON string
        if isinstance(value, (str, bytes)):
            try:
                value = json.loads(value)
            except ValueError:
                return None
        if not isinstance(value, dict):
            return None
        return value

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def claimed_digest(self) -> Optional[str]:
        if not self.journal:
            return None
        digest = self.journal.get("contentHash")
        return digest if isinstance(digest, str) and digest else None
