"""
x402 payment guard for the pay routes.

A paying client sends the signed payment payload in the X-PAYMENT header
(base64 JSON, x402 v1, "exact" scheme). The guard asks the facilitator to
verify it against the route's payment requirements, settles it, and hands the
gateway a PaymentClaim. The settlement result travels back to the client in
the X-PAYMENT-RESPONSE header.

Pay routes call the guard only once the content is known to be deliverable,
so a payment is never settled for content that cannot be released.

Without a configured facilitator no guard is installed and an upstream x402
gateway is trusted to have settled the payment.
"""

import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from zkx402.connectors.facilitator import X402_VERSION, Facilitator
from zkx402.core.errors import AccessProtocolError
from zkx402.core.models import PaymentClaim
from zkx402.core.pricing import PriceTier

PAYMENT_HEADER = "x-payment"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"
PAYMENT_SCHEME = "exact"
DEFAULT_ASSET_DECIMALS = 6


class PaymentRequired(AccessProtocolError):
    """No acceptable payment on a pay route."""

    code = "payment_required"
    status_code = 402

    def __init__(self, message: str, accepts: List[Dict[str, Any]], payer: Optional[str] = None):
        super().__init__(message)
        self.accepts = accepts
        self.payer = payer

    def to_dict(self) -> dict:
        body = {
            "x402Version": X402_VERSION,
            "error": str(self),
            "accepts": self.accepts,
        }
        if self.payer:
            body["payer"] = self.payer
        return body


def decode_payment_header(value: str) -> Dict[str, Any]:
    """
    Decode an X-PAYMENT header value.

    Raises:
        ValueError: not base64 JSON object
    """
    try:
        padded = value.strip() + "=" * (-len(value.strip()) % 4)
        payload = json.loads(base64.b64decode(padded, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"invalid X-PAYMENT encoding: {e}") from e

    if not isinstance(payload, dict):
        raise ValueError("X-PAYMENT must encode a JSON object")
    return payload


def encode_payment_header(payload: Dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")


def to_atomic_units(price: Decimal, decimals: int = DEFAULT_ASSET_DECIMALS) -> str:
    """Dollar price → integer amount of a stablecoin with `decimals` places."""
    return str(int((price * (Decimal(10) ** decimals)).to_integral_value()))


class X402Paywall:
    """
    Verifies and settles x402 payments through a facilitator.

    Args:
        facilitator: Verification and settlement collaborator
        pay_to: Receiving wallet address
        asset: Token contract address of the payment asset
        asset_decimals: Decimal places of the payment asset
        max_timeout_seconds: Validity the client must give its payment
    """

    def __init__(
        self,
        facilitator: Facilitator,
        pay_to: str,
        asset: str = "",
        asset_decimals: int = DEFAULT_ASSET_DECIMALS,
        max_timeout_seconds: int = 60,
    ):
        self.facilitator = facilitator
        self.pay_to = pay_to
        self.asset = asset
        self.asset_decimals = asset_decimals
        self.max_timeout_seconds = max_timeout_seconds

    def requirements(self, tier: PriceTier, resource: str) -> Dict[str, Any]:
        """Payment requirements for collecting `tier` on `resource`."""
        return {
            "scheme": PAYMENT_SCHEME,
            "network": tier.network,
            "maxAmountRequired": to_atomic_units(tier.price, self.asset_decimals),
            "resource": resource,
            "description": tier.description or f"Access at {tier.name} price",
            "mimeType": "application/json",
            "payTo": self.pay_to,
            "maxTimeoutSeconds": self.max_timeout_seconds,
            "asset": self.asset,
            "extra": {"tier": tier.name, "price": tier.display_price},
        }

    async def collect(
        self,
        headers: Mapping[str, str],
        tier: PriceTier,
        resource: str,
    ) -> PaymentClaim:
        """
        Verify and settle the payment attached to a request.

        Args:
            headers: Request headers
            tier: Tier the route collects
            resource: Absolute URL of the paid resource

        Returns:
            PaymentClaim with the payer and the settlement receipt

        Raises:
            PaymentRequired: no payment, invalid payment or failed settlement
        """
        requirements = self.requirements(tier, resource)
        accepts = [requirements]

        header = headers.get(PAYMENT_HEADER)
        if not header:
            raise PaymentRequired("X-PAYMENT header is required", accepts)

        try:
            payload = decode_payment_header(header)
        except ValueError as e:
            raise PaymentRequired(str(e), accepts) from e

        if payload.get("scheme") != PAYMENT_SCHEME or payload.get("network") != tier.network:
            raise PaymentRequired("No matching payment requirements found", accepts)

        verification = await self.facilitator.verify(payload, requirements)
        payer = verification.get("payer")
        if not verification.get("isValid"):
            reason = verification.get("invalidReason") or "invalid_payment"
            logger.info("Payment rejected for {}: {}", resource, reason)
            raise PaymentRequired(reason, accepts, payer=payer)

        settlement = await self.facilitator.settle(payload, requirements)
        if not settlement.get("success"):
            reason = settlement.get("errorReason") or "settlement_failed"
            logger.warning("Settlement failed for {}: {}", resource, reason)
            raise PaymentRequired(reason, accepts, payer=payer)

        payer = settlement.get("payer") or payer or "unknown"
        logger.info("💰 Settled {} from {} ({})", tier.display_price, payer, settlement.get("transaction"))
        return PaymentClaim(payer=payer, method="x402", receipt=settlement)

    @staticmethod
    def response_header(claim: PaymentClaim) -> Optional[str]:
        """X-PAYMENT-RESPONSE value for a settled claim."""
        if not isinstance(claim.receipt, dict):
            return None
        return encode_payment_header(claim.receipt)
