"""
zkx402 Core Module

The access protocol itself:
- Content registry (proof-gated verification)
- Price tiers (role -> price)
- Access gateway (402 challenge / delivery)
- Audit ledger (append-only deliveries)
"""

from zkx402.core.audit_ledger import AuditLedger
from zkx402.core.content_registry import ContentRegistry
from zkx402.core.errors import (
    AccessProtocolError,
    ContentUnverified,
    HashMismatch,
    IdentityUnverifiable,
    InternalError,
    InvalidInput,
    NotFound,
    ProofFailed,
    ProofNotCompleted,
    ProofTimeout,
)
from zkx402.core.gateway import AccessGateway, Challenge, Delivery
from zkx402.core.models import (
    AccessGrant,
    ContentRecord,
    IdentityAssertion,
    PaymentClaim,
    ProvingResult,
    ResolvedIdentity,
)
from zkx402.core.pricing import AccessRole, PriceTable, PriceTier, default_tiers

__all__ = [
    "AuditLedger",
    "ContentRegistry",
    "AccessGateway",
    "Challenge",
    "Delivery",
    "AccessProtocolError",
    "ContentUnverified",
    "HashMismatch",
    "IdentityUnverifiable",
    "InternalError",
    "InvalidInput",
    "NotFound",
    "ProofFailed",
    "ProofNotCompleted",
    "ProofTimeout",
    "AccessGrant",
    "ContentRecord",
    "IdentityAssertion",
    "PaymentClaim",
    "ProvingResult",
    "ResolvedIdentity",
    "AccessRole",
    "PriceTable",
    "PriceTier",
    "default_tiers",
]
