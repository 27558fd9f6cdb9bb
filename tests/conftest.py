"""
Shared fixtures: DID holders, credential issuers and a wired-up gateway.
"""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from eth_account import Account
from eth_account.messages import encode_defunct

from zkx402.auth.credentials import create_credential_jwt
from zkx402.auth.did import did_key_from_ed25519_public_key, ownership_message
from zkx402.auth.verifier import IdentityVerifier
from zkx402.backends import InMemoryContentStore, InMemoryLedgerStore
from zkx402.connectors.proving_client import MockProvingClient
from zkx402.core.audit_ledger import AuditLedger
from zkx402.core.content_registry import ContentRegistry
from zkx402.core.gateway import AccessGateway
from zkx402.core.models import IdentityAssertion
from zkx402.core.pricing import PriceTable


class EthrHolder:
    """did:ethr controller backed by a throwaway secp256k1 account."""

    def __init__(self):
        self.account = Account.create()

    @property
    def did(self) -> str:
        return f"did:ethr:{self.account.address}"

    def sign(self, nonce: str, domain: str = "") -> str:
        signed = Account.sign_message(
            encode_defunct(text=ownership_message(nonce, domain)),
            private_key=self.account.key,
        )
        return "0x" + bytes(signed.signature).hex()


class KeyHolder:
    """did:key controller backed by an Ed25519 key."""

    def __init__(self):
        self.private_key = Ed25519PrivateKey.generate()
        public_bytes = self.private_key.public_key().public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )
        self.did = did_key_from_ed25519_public_key(public_bytes)

    def sign(self, nonce: str, domain: str = "") -> str:
        return "0x" + self.private_key.sign(ownership_message(nonce, domain).encode("utf-8")).hex()


class EthrIssuer:
    """Credential issuer signing ES256K-R JWTs as did:ethr."""

    def __init__(self):
        self.account = Account.create()

    @property
    def did(self) -> str:
        return f"did:ethr:{self.account.address}"

    def issue(self, subject: str, role=None, **kwargs) -> str:
        return create_credential_jwt(bytes(self.account.key), subject, role=role, **kwargs)


def make_assertion(holder, issuer, role="journalist", nonce="nonce-1", domain="", **jwt_kwargs) -> IdentityAssertion:
    """Complete, correctly signed identity bundle."""
    return IdentityAssertion(
        did=holder.did,
        nonce=nonce,
        signature=holder.sign(nonce, domain),
        vcJwt=issuer.issue(holder.did, role=role, **jwt_kwargs),
    )


@pytest.fixture
def holder():
    return EthrHolder()


@pytest.fixture
def key_holder():
    return KeyHolder()


@pytest.fixture
def issuer():
    return EthrIssuer()


@pytest.fixture
def prover():
    return MockProvingClient()


@pytest.fixture
def registry(prover):
    return ContentRegistry(InMemoryContentStore(), prover, proof_timeout=0.2)


@pytest.fixture
def ledger():
    return AuditLedger(InMemoryLedgerStore())


@pytest.fixture
def gateway(registry, ledger):
    return AccessGateway(registry, ledger, IdentityVerifier(), PriceTable())


@pytest.fixture
def make_identity(holder, issuer):
    """Factory for signed identity bundles from the default holder and issuer."""

    def _make(role="journalist", nonce="nonce-1", domain="", signer=None, **jwt_kwargs) -> IdentityAssertion:
        return make_assertion(signer or holder, issuer, role=role, nonce=nonce, domain=domain, **jwt_kwargs)

    return _make


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without I/O")
    config.addinivalue_line("markers", "integration: tests exercising the HTTP surface")
