"""
Ownership & credential verification.

Turns an IdentityAssertion into a ResolvedIdentity. Failures are values, not
exceptions: the gateway prices an unverifiable caller at the public tier.

Failure reasons:
    missing       one of did/nonce/signature/vcJwt absent
    sig_invalid   signature malformed or unrecoverable
    sig_mismatch  signature made by a key the DID does not encode
    vc_invalid    credential rejected; `detail` says why
"""

import logging
from typing import Iterable, Optional

from zkx402.core.errors import IdentityUnverifiable
from zkx402.core.models import IdentityAssertion, ResolvedIdentity

from .credentials import CredentialVerifier, DidJwtCredentialVerifier
from .did import OwnershipError, verify_ownership

logger = logging.getLogger(__name__)


class IdentityVerifier:
    """
    Verifies DID ownership and the attached credential.

    Args:
        credential_verifier: Credential validation collaborator
        allowed_issuers: Issuer DIDs trusted for role claims; empty trusts all
        signing_domain: Optional prefix of the ownership message
    """

    def __init__(
        self,
        credential_verifier: Optional[CredentialVerifier] = None,
        allowed_issuers: Optional[Iterable[str]] = None,
        signing_domain: str = "",
    ):
        self.credential_verifier = credential_verifier or DidJwtCredentialVerifier()
        self.allowed_issuers = {i.strip() for i in (allowed_issuers or ()) if i and i.strip()}
        self.signing_domain = signing_domain

    def issuer_allowed(self, issuer: Optional[str]) -> bool:
        if not self.allowed_issuers:
            return True
        return issuer in self.allowed_issuers

    async def verify(self, assertion: IdentityAssertion) -> ResolvedIdentity:
        missing = assertion.missing_fields()
        if missing:
            return ResolvedIdentity.failure("missing", ", ".join(missing))

        try:
            verify_ownership(
                assertion.decentralized_id,
                assertion.nonce,
                assertion.signature,
                domain=self.signing_domain,
            )
        except OwnershipError as e:
            logger.debug(f"Ownership check failed for {assertion.decentralized_id}: {e.detail}")
            return ResolvedIdentity.failure(e.reason, e.detail or None)

        try:
            credential = await self.credential_verifier.verify(assertion.credential_token)
        except IdentityUnverifiable as e:
            logger.debug(f"Credential rejected for {assertion.decentralized_id}: {e}")
            return ResolvedIdentity.failure("vc_invalid", str(e))

        return ResolvedIdentity(
            ok=True,
            role=credential.role,
            issuer=credential.issuer,
            issuer_allowed=self.issuer_allowed(credential.issuer),
            payload=credential.payload,
        )
