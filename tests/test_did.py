"""
Tests for DID ownership proofs.
"""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from zkx402.auth.did import (
    OwnershipError,
    b58decode,
    b58encode,
    did_method,
    ethr_address,
    ownership_message,
    verify_ownership,
)


@pytest.mark.unit
class TestDidHelpers:
    """Test identifier parsing helpers."""

    def test_did_method(self):
        assert did_method("did:ethr:0xabc") == "ethr"
        assert did_method("did:key:z6Mk") == "key"
        assert did_method("0xabc") is None

    def test_ethr_address_with_network(self):
        address = "0x" + "Ab" * 20
        assert ethr_address(f"did:ethr:celo:{address}") == address.lower()

    def test_ethr_address_rejects_garbage(self):
        with pytest.raises(ValueError):
            ethr_address("did:ethr:not-an-address")

    def test_base58_leading_zeros(self):
        data = b"\x00\x00\x01\x02"
        assert b58decode(b58encode(data)) == data

    def test_ownership_message(self):
        assert ownership_message("42") == "prove_self:42"
        assert ownership_message("42", "zkx402") == "zkx402:prove_self:42"


class TestEthrOwnership:
    """Test did:ethr personal_sign ownership."""

    def test_valid_signature(self, holder):
        verify_ownership(holder.did, "nonce-1", holder.sign("nonce-1"))

    def test_domain_must_match(self, holder):
        signature = holder.sign("nonce-1", domain="zkx402")
        verify_ownership(holder.did, "nonce-1", signature, domain="zkx402")

        with pytest.raises(OwnershipError) as exc_info:
            verify_ownership(holder.did, "nonce-1", signature)
        assert exc_info.value.reason == "sig_mismatch"

    def test_other_nonce_mismatches(self, holder):
        with pytest.raises(OwnershipError) as exc_info:
            verify_ownership(holder.did, "nonce-2", holder.sign("nonce-1"))
        assert exc_info.value.reason == "sig_mismatch"

    def test_other_key_mismatches(self, holder, issuer):
        with pytest.raises(OwnershipError) as exc_info:
            verify_ownership(issuer.did, "nonce-1", holder.sign("nonce-1"))
        assert exc_info.value.reason == "sig_mismatch"

    @pytest.mark.parametrize("signature", ["0x1234", "zz-not-a-signature", "0x" + "11" * 64])
    def test_invalid_signature(self, holder, signature):
        with pytest.raises(OwnershipError) as exc_info:
            verify_ownership(holder.did, "nonce-1", signature)
        assert exc_info.value.reason == "sig_invalid"


class TestKeyOwnership:
    """Test did:key Ed25519 ownership."""

    def test_valid_signature(self, key_holder):
        verify_ownership(key_holder.did, "n", key_holder.sign("n"))

    def test_wrong_key(self, key_holder):
        other = Ed25519PrivateKey.generate()
        signature = "0x" + other.sign(ownership_message("n").encode()).hex()
        with pytest.raises(OwnershipError) as exc_info:
            verify_ownership(key_holder.did, "n", signature)
        assert exc_info.value.reason == "sig_mismatch"

    def test_wrong_length(self, key_holder):
        with pytest.raises(OwnershipError) as exc_info:
            verify_ownership(key_holder.did, "n", "0x" + "11" * 65)
        assert exc_info.value.reason == "sig_invalid"

    def test_unsupported_method(self, holder):
        with pytest.raises(OwnershipError) as exc_info:
            verify_ownership("did:web:example.com", "n", holder.sign("n"))
        assert exc_info.value.reason == "sig_mismatch"
