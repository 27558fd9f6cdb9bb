"""
Remote credential verification service connector.

Delegates DID resolution and credential verification to an external service
(e.g. a universal resolver deployment fronting did-jwt). The service answers
`POST {url}` with `{"jwt": <token>}` by returning

    {"verified": true, "issuer": "did:...", "payload": {...}}

or `{"verified": false, "error": "..."}`. Any transport failure counts as an
unverifiable credential so the caller degrades to public pricing.
"""

from typing import Optional

import httpx
from loguru import logger

from zkx402.auth.credentials import CredentialError, VerifiedCredential


class RemoteCredentialVerifier:
    """CredentialVerifier backed by an HTTP verification service."""

    def __init__(
        self,
        url: str,
        request_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            url: Verification endpoint
            request_timeout: Per-request HTTP timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.url = url
        self._client = httpx.AsyncClient(timeout=request_timeout, transport=transport)

    async def verify(self, token: str) -> VerifiedCredential:
        try:
            response = await self._client.post(self.url, json={"jwt": token})
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Credential service unreachable: {}", e)
            raise CredentialError(f"resolver unavailable: {e}") from e

        if response.status_code != 200 or not isinstance(body, dict) or not body.get("verified"):
            error = body.get("error") if isinstance(body, dict) else None
            raise CredentialError(error or f"credential rejected (HTTP {response.status_code})")

        payload = body.get("payload") or {}
        if not isinstance(payload, dict):
            raise CredentialError("malformed verification payload")
        issuer = body.get("issuer") or payload.get("iss") or payload.get("issuer")
        if not isinstance(issuer, str) or not issuer:
            raise CredentialError("verified payload has no issuer")

        return VerifiedCredential(issuer=issuer, payload=payload)

    async def close(self):
        await self._client.aclose()
