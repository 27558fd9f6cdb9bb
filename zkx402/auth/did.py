"""
Decentralized identifier helpers and proof of key ownership.

Supported methods:
    did:ethr  did:ethr:0x<address>, did:ethr:<network>:0x<address>, or a
              compressed secp256k1 public key in place of the address.
              Ownership is an EIP-191 personal_sign over the challenge message.
    did:key   Ed25519 (multicodec 0xed01, multibase base58btc `z...`).
              Ownership is an Ed25519 signature over the challenge message,
              hex or base64url encoded.

On-chain resolution (delegates, key rotation) is the resolver's concern and
is not performed here: a did:ethr identifier is controlled by its own address.
"""

import base64
import re
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys

ETHR_PREFIX = "did:ethr:"
KEY_PREFIX = "did:key:"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_COMPRESSED_KEY_RE = re.compile(r"^0x0[23][0-9a-fA-F]{64}$")
_HEX_SIG_RE = re.compile(r"^(0x)?[0-9a-fA-F]+$")

# Base58 (bitcoin alphabet)
B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}

ED25519_MULTICODEC = bytes([0xED, 0x01])


class OwnershipError(Exception):
    """Signature does not prove control of the DID."""

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(detail or reason)
        self.reason = reason
        self.detail = detail


def b58decode(s: str) -> bytes:
    s_bytes = s.encode("ascii")
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = len(s_bytes) - len(s_bytes.lstrip(B58_ALPHABET[:1]))
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b58encode(b: bytes) -> str:
    n_pad = len(b) - len(b.lstrip(b"\x00"))
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


def did_method(did: str) -> Optional[str]:
    parts = did.split(":")
    if len(parts) < 3 or parts[0] != "did":
        return None
    return parts[1]


def ethr_address(did: str) -> str:
    """
    Controller address of a did:ethr identifier (lower-case, 0x-prefixed).

    Raises:
        ValueError: not a did:ethr identifier
    """
    if not did.startswith(ETHR_PREFIX):
        raise ValueError("not a did:ethr identifier")
    identifier = did[len(ETHR_PREFIX):].split("#", 1)[0].rsplit(":", 1)[-1]

    if _ADDRESS_RE.match(identifier):
        return identifier.lower()
    if _COMPRESSED_KEY_RE.match(identifier):
        public_key = keys.PublicKey.from_compressed_bytes(bytes.fromhex(identifier[2:]))
        return public_key.to_address().lower()
    raise ValueError("did:ethr identifier is neither an address nor a public key")


def did_ethr_from_address(address: str, network: Optional[str] = None) -> str:
    if network:
        return f"{ETHR_PREFIX}{network}:{address}"
    return f"{ETHR_PREFIX}{address}"


def ed25519_public_key_from_did_key(did: str) -> Ed25519PublicKey:
    """
    Parse a did:key (Ed25519) into a public key.

    Raises:
        ValueError: wrong method, encoding, multicodec or key length
    """
    if not did.startswith(KEY_PREFIX + "z"):
        raise ValueError("only did:key:z... supported")
    decoded = b58decode(did[len(KEY_PREFIX) + 1:].split("#", 1)[0])

    if not decoded.startswith(ED25519_MULTICODEC):
        raise ValueError("did:key multicodec prefix not recognized for Ed25519")
    raw = decoded[len(ED25519_MULTICODEC):]
    if len(raw) != 32:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(raw)}")

    return Ed25519PublicKey.from_public_bytes(raw)


def did_key_from_ed25519_public_key(public_bytes: bytes) -> str:
    return KEY_PREFIX + "z" + b58encode(ED25519_MULTICODEC + public_bytes)


def ownership_message(nonce: str, domain: str = "") -> str:
    """The message a caller signs to prove control of their DID."""
    message = f"prove_self:{nonce}"
    return f"{domain}:{message}" if domain else message


def _decode_signature(signature: str) -> bytes:
    signature = signature.strip()
    if _HEX_SIG_RE.match(signature):
        hex_part = signature[2:] if signature.startswith("0x") else signature
        if len(hex_part) % 2 == 0:
            return bytes.fromhex(hex_part)
    return b64url_decode(signature)


def verify_ownership(did: str, nonce: str, signature: str, domain: str = "") -> None:
    """
    Check that `signature` over the challenge message was made by the DID's key.

    Raises:
        OwnershipError: reason "sig_invalid" if the signature cannot be decoded
            or recovered, "sig_mismatch" if it belongs to another key or the
            DID cannot be mapped to a key
    """
    message = ownership_message(nonce, domain)
    method = did_method(did)

    try:
        sig = _decode_signature(signature)
    except ValueError as e:
        raise OwnershipError("sig_invalid", f"undecodable signature: {e}") from e

    if method == "ethr":
        try:
            expected = ethr_address(did)
        except ValueError as e:
            raise OwnershipError("sig_mismatch", str(e)) from e
        if len(sig) != 65:
            raise OwnershipError("sig_invalid", f"secp256k1 signature must be 65 bytes, got {len(sig)}")
        try:
            recovered = Account.recover_message(encode_defunct(text=message), signature=sig)
        except Exception as e:
            raise OwnershipError("sig_invalid", f"signature not recoverable: {e}") from e
        if recovered.lower() != expected:
            raise OwnershipError("sig_mismatch", "recovered address does not match DID")
        return

    if method == "key":
        try:
            public_key = ed25519_public_key_from_did_key(did)
        except ValueError as e:
            raise OwnershipError("sig_mismatch", str(e)) from e
        if len(sig) != 64:
            raise OwnershipError("sig_invalid", f"Ed25519 signature must be 64 bytes, got {len(sig)}")
        try:
            public_key.verify(sig, message.encode("utf-8"))
        except InvalidSignature as e:
            raise OwnershipError("sig_mismatch", "signature does not match DID key") from e
        return

    raise OwnershipError("sig_mismatch", f"unsupported DID method: {method}")
