"""
Verifiable credential validation.

Credentials travel as compact JWTs issued by a third party:

    header   {"alg": "ES256K-R" | "ES256K" | "EdDSA", "typ": "JWT"}
    payload  {"iss": <issuer DID>, "sub": <holder DID>,
              "vc": {"credentialSubject": {"role": "journalist"}}, ...}

`DidJwtCredentialVerifier` checks the signature against the key material the
issuer DID encodes (did:ethr address recovery, did:key Ed25519) and the
exp/nbf/iat window. A remote verification service can be plugged in through
the same `CredentialVerifier` protocol (see zkx402.connectors).
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from eth_keys import keys

from zkx402.core.errors import IdentityUnverifiable

from .did import (
    b64url_decode,
    b64url_encode,
    did_ethr_from_address,
    did_key_from_ed25519_public_key,
    did_method,
    ed25519_public_key_from_did_key,
    ethr_address,
)

logger = logging.getLogger(__name__)

SECP256K1_ALGS = {"ES256K-R", "ES256K"}
ED25519_ALGS = {"EdDSA", "Ed25519"}
DEFAULT_SKEW_SECONDS = 300


class CredentialError(IdentityUnverifiable):
    """Credential failed validation."""


@dataclass
class VerifiedCredential:
    """A credential whose signature and validity window checked out."""
    issuer: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> Optional[str]:
        """Claimed role; non-string claims count as no role."""
        vc = self.payload.get("vc")
        if isinstance(vc, dict):
            subject = vc.get("credentialSubject")
            if isinstance(subject, dict) and subject.get("role"):
                role = subject["role"]
                return role if isinstance(role, str) else None
        credential = self.payload.get("credential")
        if isinstance(credential, dict) and credential.get("role"):
            role = credential["role"]
            return role if isinstance(role, str) else None
        return None


class CredentialVerifier(Protocol):
    async def verify(self, token: str) -> VerifiedCredential:
        ...


def _issuer_of(payload: Dict[str, Any]) -> Optional[str]:
    issuer = payload.get("iss") or payload.get("issuer")
    if isinstance(issuer, dict):
        issuer = issuer.get("id")
    return issuer if isinstance(issuer, str) and issuer else None


class DidJwtCredentialVerifier:
    """
    In-process DID-JWT verifier.

    Args:
        skew_seconds: Clock skew tolerated on exp/nbf/iat
        clock: Returns the current Unix time (tests)
    """

    def __init__(
        self,
        skew_seconds: int = DEFAULT_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.skew_seconds = skew_seconds
        self.clock = clock

    async def verify(self, token: str) -> VerifiedCredential:
        return self.verify_token(token)

    def verify_token(self, token: str) -> VerifiedCredential:
        """
        Verify a compact JWT credential.

        Raises:
            CredentialError: malformed token, unknown alg, bad signature,
                or outside its validity window
        """
        parts = token.split(".") if isinstance(token, str) else []
        if len(parts) != 3:
            raise CredentialError("incorrect format JWT")

        try:
            header = json.loads(b64url_decode(parts[0]))
            payload = json.loads(b64url_decode(parts[1]))
            signature = b64url_decode(parts[2])
        except (ValueError, UnicodeDecodeError) as e:
            raise CredentialError(f"incorrect format JWT: {e}") from e

        if not isinstance(header, dict) or not isinstance(payload, dict):
            raise CredentialError("incorrect format JWT")

        issuer = _issuer_of(payload)
        if issuer is None:
            raise CredentialError("JWT has no issuer")

        signing_input = f"{parts[0]}.{parts[1]}".encode("ascii")
        alg = header.get("alg")

        if alg in SECP256K1_ALGS:
            self._verify_secp256k1(issuer, signing_input, signature)
        elif alg in ED25519_ALGS:
            self._verify_ed25519(issuer, signing_input, signature)
        else:
            raise CredentialError(f"not supported: alg {alg!r}")

        self._check_validity_window(payload)
        logger.debug(f"Credential from {issuer} verified")
        return VerifiedCredential(issuer=issuer, payload=payload)

    def _verify_secp256k1(self, issuer: str, signing_input: bytes, signature: bytes) -> None:
        if did_method(issuer) != "ethr":
            raise CredentialError(f"no secp256k1 key material for issuer {issuer}")
        try:
            expected = ethr_address(issuer)
        except ValueError as e:
            raise CredentialError(str(e)) from e

        if len(signature) == 65:
            v = signature[64]
            candidates = [v - 27 if v >= 27 else v]
        elif len(signature) == 64:
            candidates = [0, 1]
        else:
            raise CredentialError(f"invalid_signature: wrong length {len(signature)}")

        digest = hashlib.sha256(signing_input).digest()
        for v in candidates:
            try:
                sig = keys.Signature(signature_bytes=signature[:64] + bytes([v]))
                recovered = sig.recover_public_key_from_msg_hash(digest)
            except Exception:
                continue
            if recovered.to_address().lower() == expected:
                return

        raise CredentialError("invalid_signature: no matching public key found")

    def _verify_ed25519(self, issuer: str, signing_input: bytes, signature: bytes) -> None:
        try:
            public_key = ed25519_public_key_from_did_key(issuer)
        except ValueError as e:
            raise CredentialError(f"no Ed25519 key material for issuer {issuer}: {e}") from e
        try:
            public_key.verify(signature, signing_input)
        except InvalidSignature as e:
            raise CredentialError("invalid_signature: signature does not match issuer key") from e

    def _check_validity_window(self, payload: Dict[str, Any]) -> None:
        now = self.clock()
        exp = payload.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)):
                raise CredentialError("exp must be numeric")
            if exp + self.skew_seconds < now:
                raise CredentialError(f"JWT has expired: exp {exp} < now {int(now)}")

        not_before = payload.get("nbf", payload.get("iat"))
        if not_before is not None:
            if not isinstance(not_before, (int, float)):
                raise CredentialError("nbf/iat must be numeric")
            if not_before - self.skew_seconds > now:
                raise CredentialError(f"JWT not valid before {not_before}")


def create_credential_jwt(
    signer: Union[bytes, str, Ed25519PrivateKey],
    subject: str,
    role: Optional[str] = None,
    issuer: Optional[str] = None,
    network: Optional[str] = None,
    expires_in: Optional[int] = None,
    issued_at: Optional[int] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Issue a role credential as a compact JWT.

    Args:
        signer: secp256k1 private key (bytes or hex) for a did:ethr issuer,
            or an Ed25519PrivateKey for a did:key issuer
        subject: Holder DID
        role: Role claim placed in vc.credentialSubject
        issuer: Issuer DID (default: derived from the signer)
        network: did:ethr network qualifier for the derived issuer
        expires_in: Seconds until expiry
        issued_at: iat override (default: now)
        extra_claims: Extra top-level claims

    Returns:
        Signed JWT string
    """
    iat = int(time.time()) if issued_at is None else issued_at
    credential_subject: Dict[str, Any] = {"id": subject}
    if role is not None:
        credential_subject["role"] = role

    if isinstance(signer, Ed25519PrivateKey):
        alg = "EdDSA"
        public_bytes = signer.public_key().public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )
        issuer = issuer or did_key_from_ed25519_public_key(public_bytes)
    else:
        alg = "ES256K-R"
        raw = bytes.fromhex(signer[2:] if signer.startswith("0x") else signer) if isinstance(signer, str) else signer
        private_key = keys.PrivateKey(raw)
        issuer = issuer or did_ethr_from_address(private_key.public_key.to_checksum_address(), network)

    payload: Dict[str, Any] = {
        "iss": issuer,
        "sub": subject,
        "iat": iat,
        "vc": {
            "@context": ["https://www.w3.org/2018/credentials/v1"],
            "type": ["VerifiableCredential"],
            "credentialSubject": credential_subject,
        },
    }
    if expires_in is not None:
        payload["exp"] = iat + expires_in
    if extra_claims:
        payload.update(extra_claims)

    header = {"alg": alg, "typ": "JWT"}
    signing_input = ".".join(
        b64url_encode(json.dumps(part, separators=(",", ":")).encode("utf-8"))
        for part in (header, payload)
    )

    if alg == "EdDSA":
        signature = signer.sign(signing_input.encode("ascii"))
    else:
        digest = hashlib.sha256(signing_input.encode("ascii")).digest()
        signature = private_key.sign_msg_hash(digest).to_bytes()

    return f"{signing_input}.{b64url_encode(signature)}"
