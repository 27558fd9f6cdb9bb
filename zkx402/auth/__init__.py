"""
zkx402 Authentication Module

Who is asking, and who paid:
- Identity assertion parsing (X-Proof header / discrete fields)
- DID ownership proofs (did:ethr, did:key)
- Verifiable credential validation (DID-JWT)
- x402 payment verification and settlement
"""

from zkx402.auth.credentials import (
    CredentialError,
    CredentialVerifier,
    DidJwtCredentialVerifier,
    VerifiedCredential,
    create_credential_jwt,
)
from zkx402.auth.did import OwnershipError, ownership_message, verify_ownership
from zkx402.auth.identity_parser import (
    decode_identity_header,
    encode_identity_header,
    has_identity,
    parse_identity,
)
from zkx402.auth.payment import PaymentRequired, X402Paywall
from zkx402.auth.verifier import IdentityVerifier

__all__ = [
    "CredentialError",
    "CredentialVerifier",
    "DidJwtCredentialVerifier",
    "VerifiedCredential",
    "create_credential_jwt",
    "OwnershipError",
    "ownership_message",
    "verify_ownership",
    "decode_identity_header",
    "encode_identity_header",
    "has_identity",
    "parse_identity",
    "PaymentRequired",
    "X402Paywall",
    "IdentityVerifier",
]
