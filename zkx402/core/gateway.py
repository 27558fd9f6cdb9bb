"""
Access gateway: the HTTP 402 challenge/response protocol.

Per content id and request the protocol moves

    Unchallenged -> Challenged(tier) -> Delivered

Challenges are computed fresh on every request and have no side effects.
Only delivery writes anything (one ledger entry). There is no free path:
every unpaid request is challenged, and any identity problem prices the
caller at the public tier instead of denying access.

Payment validity is NOT checked here. `complete_delivery` must only be
reached after the settlement collaborator confirmed the payment.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from zkx402.auth.identity_parser import has_identity, parse_identity
from zkx402.auth.verifier import IdentityVerifier

from .audit_ledger import AuditLedger
from .content_registry import ContentRegistry
from .errors import ContentUnverified
from .models import AccessGrant, ContentRecord, PaymentClaim
from .pricing import PriceTable, PriceTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Challenge:
    """Payment required before delivery."""
    content_id: str
    tier: PriceTier
    reason: Optional[str] = None
    detail: Optional[str] = None

    @property
    def discounted(self) -> bool:
        return self.tier.name != "public"

    @property
    def payment(self) -> Dict[str, str]:
        return self.tier.to_payment(self.content_id)

    def to_dict(self) -> Dict[str, Any]:
        if self.discounted:
            message = f"{self.tier.name} role detected, discounted price applies"
        else:
            message = "no discount applicable, public price"
        return {
            "error": "payment_required",
            "message": message,
            "role": self.tier.name,
            "reason": self.reason,
            "detail": self.detail,
            "payment": self.payment,
        }


@dataclass(frozen=True)
class Delivery:
    """Content released after a confirmed payment."""
    record: ContentRecord
    grant: AccessGrant

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.record.reference,
            "provenance": {"contentHash": self.record.content_hash},
            "access": "paid",
            "price": self.grant.price,
        }


class AccessGateway:
    """
    Orchestrates parse → verify → price for access requests, and records
    deliveries.

    Args:
        registry: Content registry
        ledger: Audit ledger
        verifier: Identity verifier
        prices: Price table
    """

    def __init__(
        self,
        registry: ContentRegistry,
        ledger: AuditLedger,
        verifier: IdentityVerifier,
        prices: PriceTable,
    ):
        self.registry = registry
        self.ledger = ledger
        self.verifier = verifier
        self.prices = prices

    def ensure_deliverable(self, content_id: str) -> ContentRecord:
        """Return the record if it may be released, else raise NotFound or ContentUnverified."""
        record = self.registry.get(content_id)
        if not record.verified:
            raise ContentUnverified(f"content {content_id} is not verified")
        return record

    async def request_access(
        self,
        content_id: str,
        headers: Optional[Mapping[str, str]] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Challenge:
        """
        Price an access request.

        Args:
            content_id: Content being requested
            headers: Request headers (X-Proof)
            fields: Discrete identity fields from body/query

        Returns:
            Challenge at the tier the caller qualifies for

        Raises:
            NotFound: unknown content id
            ContentUnverified: content not (or never going to be) verified
        """
        self.ensure_deliverable(content_id)
        public = self.prices.public

        assertion = parse_identity(headers, fields)
        if assertion is None:
            reason = "identity_malformed" if has_identity(headers, fields) else None
            return Challenge(content_id, public, reason=reason)

        identity = await self.verifier.verify(assertion)
        if not identity.ok:
            return Challenge(content_id, public, reason=identity.reason, detail=identity.detail)

        if not identity.issuer_allowed:
            logger.info(f"Issuer {identity.issuer} not allowed, pricing {content_id} at public tier")
            return Challenge(
                content_id,
                public,
                reason="issuer_not_allowed",
                detail=identity.issuer,
            )

        tier = self.prices.resolve(identity.role)
        return Challenge(content_id, tier)

    def complete_delivery(
        self,
        content_id: str,
        claim: PaymentClaim,
        tier: Optional[PriceTier] = None,
    ) -> Delivery:
        """
        Release content for a payment the settlement collaborator confirmed.

        Args:
            content_id: Content being paid for
            claim: Payer identity and receipt from the settlement layer
            tier: Tier collected by the pay route (default: public)

        Returns:
            Delivery with the content reference and the ledger grant

        Raises:
            NotFound: unknown content id
            ContentUnverified: content not verified
        """
        record = self.ensure_deliverable(content_id)
        tier = tier or self.prices.public

        grant = AccessGrant(
            content_id=content_id,
            payer=claim.payer,
            method=claim.method,
            price=tier.display_price,
            tier=tier.name,
            receipt=claim.receipt,
        )
        self.ledger.append(grant)
        logger.info(f"Delivered {content_id} to {claim.payer} at {tier.display_price} ({tier.name})")

        return Delivery(record=record, grant=grant)
