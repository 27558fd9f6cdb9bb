"""
zkx402 - Identity-gated, pay-per-access content

Content is released only after payment, and the price depends on who asks:
a caller proving control of a DID and holding a role credential from a
trusted issuer pays their role's price, everybody else pays the public price.

Quick Start:
    >>> from zkx402.api_server import create_app, ServerConfig
    >>>
    >>> app = create_app(ServerConfig(store_backend="sqlite", prover_url="http://prover:8080"))
    >>>
    >>> # or run the server
    >>> # $ zkx402-server

Flow:
    - POST /upload registers content and waits for the prover
    - GET /access/{id} answers 402 with the caller's price and pay route
    - POST /pay/{route}/{id} delivers once the payment is settled
    - GET /audit/{id} lists every delivery
"""

__version__ = "1.0.0"

from zkx402.core import (
    AccessGateway,
    AccessProtocolError,
    AuditLedger,
    ContentRegistry,
    PriceTable,
    PriceTier,
)
from zkx402.auth import IdentityVerifier, X402Paywall, parse_identity

__all__ = [
    "__version__",
    "AccessGateway",
    "AccessProtocolError",
    "AuditLedger",
    "ContentRegistry",
    "PriceTable",
    "PriceTier",
    "IdentityVerifier",
    "X402Paywall",
    "parse_identity",
]
