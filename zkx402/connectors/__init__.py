"""
zkx402 Connectors

External collaborators the protocol delegates to:
- Proving service (content authentication)
- Credential verification service (DID resolution)
- x402 facilitator (payment verification and settlement)
"""

from zkx402.connectors.credential_service import RemoteCredentialVerifier
from zkx402.connectors.facilitator import Facilitator, HttpFacilitator, MockFacilitator
from zkx402.connectors.proving_client import (
    HttpProvingClient,
    MockProvingClient,
    ProvingClient,
)

__all__ = [
    "RemoteCredentialVerifier",
    "Facilitator",
    "HttpFacilitator",
    "MockFacilitator",
    "HttpProvingClient",
    "MockProvingClient",
    "ProvingClient",
]
