"""
Tests for the HTTP collaborators: prover, credential service, facilitator.

Network calls go through httpx.MockTransport.
"""

import json

import httpx
import pytest

from zkx402.auth.credentials import CredentialError
from zkx402.auth.verifier import IdentityVerifier
from zkx402.connectors.credential_service import RemoteCredentialVerifier
from zkx402.connectors.facilitator import HttpFacilitator, MockFacilitator
from zkx402.connectors.proving_client import HttpProvingClient, MockProvingClient
from zkx402.core.errors import InternalError


def _transport(handler):
    return httpx.MockTransport(handler)


class TestHttpProvingClient:
    """Test proof job polling."""

    @pytest.mark.asyncio
    async def test_polls_until_terminal(self):
        statuses = iter(["queued", "running", "completed"])
        seen = []

        def handler(request):
            seen.append(request.url.path)
            status = next(statuses)
            body = {"status": status}
            if status == "completed":
                body["journal"] = json.dumps({"contentHash": "0xabc"})
            return httpx.Response(200, json=body)

        client = HttpProvingClient("http://prover.test", poll_interval=0, transport=_transport(handler))
        result = await client.wait_for_result("job-1")
        await client.close()

        assert result.completed is True
        assert result.claimed_digest == "0xabc"
        assert seen == ["/jobs/job-1"] * 3

    @pytest.mark.asyncio
    async def test_failed_status_is_terminal(self):
        client = HttpProvingClient(
            "http://prover.test",
            transport=_transport(lambda request: httpx.Response(200, json={"status": "failed", "error": "boom"})),
        )
        result = await client.wait_for_result("job-1")
        await client.close()

        assert result.completed is False
        assert result.error == "boom"

    @pytest.mark.asyncio
    async def test_api_key_sent(self):
        headers = {}

        def handler(request):
            headers.update(request.headers)
            return httpx.Response(200, json={"status": "completed", "journal": {"contentHash": "0x1"}})

        client = HttpProvingClient("http://prover.test", api_key="secret", transport=_transport(handler))
        await client.fetch_status("job-1")
        await client.close()

        assert headers["authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_server_error(self):
        client = HttpProvingClient(
            "http://prover.test", transport=_transport(lambda request: httpx.Response(503))
        )
        with pytest.raises(InternalError):
            await client.fetch_status("job-1")
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_result(self):
        client = HttpProvingClient(
            "http://prover.test", transport=_transport(lambda request: httpx.Response(200, json={"state": "ok"}))
        )
        with pytest.raises(InternalError):
            await client.fetch_status("job-1")
        await client.close()


class TestMockProvingClient:
    """Test the scripted prover."""

    @pytest.mark.asyncio
    async def test_scripted_results(self):
        prover = MockProvingClient()
        prover.complete("ok", "0xabc")
        prover.fail("bad", status="cancelled")

        assert (await prover.wait_for_result("ok")).claimed_digest == "0xabc"
        assert (await prover.wait_for_result("bad")).status == "cancelled"
        assert prover.calls == {"ok": 1, "bad": 1}


class TestRemoteCredentialVerifier:
    """Test the credential verification service client."""

    @pytest.mark.asyncio
    async def test_verified_credential(self):
        def handler(request):
            assert json.loads(request.content) == {"jwt": "a.b.c"}
            return httpx.Response(200, json={
                "verified": True,
                "payload": {"iss": "did:web:press.example", "vc": {"credentialSubject": {"role": "journalist"}}},
            })

        verifier = RemoteCredentialVerifier("http://resolver.test/verify", transport=_transport(handler))
        credential = await verifier.verify("a.b.c")
        await verifier.close()

        assert credential.issuer == "did:web:press.example"
        assert credential.role == "journalist"

    @pytest.mark.asyncio
    async def test_rejected_credential(self):
        verifier = RemoteCredentialVerifier(
            "http://resolver.test/verify",
            transport=_transport(lambda request: httpx.Response(200, json={"verified": False, "error": "expired"})),
        )
        with pytest.raises(CredentialError, match="expired"):
            await verifier.verify("a.b.c")
        await verifier.close()

    @pytest.mark.asyncio
    async def test_unreachable_service(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        verifier = RemoteCredentialVerifier("http://resolver.test/verify", transport=_transport(handler))
        with pytest.raises(CredentialError, match="resolver unavailable"):
            await verifier.verify("a.b.c")
        await verifier.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [["x"], "journalist", 5])
    async def test_malformed_payload(self, payload):
        body = {"verified": True, "issuer": "did:ethr:0x1", "payload": payload}
        verifier = RemoteCredentialVerifier(
            "http://resolver.test/verify",
            transport=_transport(lambda request: httpx.Response(200, json=body)),
        )
        with pytest.raises(CredentialError, match="malformed verification payload"):
            await verifier.verify("a.b.c")
        await verifier.close()

    @pytest.mark.asyncio
    async def test_malformed_payload_degrades_to_vc_invalid(self, make_identity):
        body = {"verified": True, "issuer": "did:ethr:0x1", "payload": ["x"]}
        credentials = RemoteCredentialVerifier(
            "http://resolver.test/verify",
            transport=_transport(lambda request: httpx.Response(200, json=body)),
        )
        identity = await IdentityVerifier(credentials).verify(make_identity())
        await credentials.close()

        assert identity.ok is False
        assert identity.reason == "vc_invalid"

    @pytest.mark.asyncio
    async def test_missing_issuer(self):
        verifier = RemoteCredentialVerifier(
            "http://resolver.test/verify",
            transport=_transport(lambda request: httpx.Response(200, json={"verified": True, "payload": {}})),
        )
        with pytest.raises(CredentialError):
            await verifier.verify("a.b.c")
        await verifier.close()


class TestHttpFacilitator:
    """Test facilitator requests."""

    @pytest.mark.asyncio
    async def test_verify_and_settle(self):
        calls = []

        def handler(request):
            body = json.loads(request.content)
            calls.append((request.url.path, body))
            if request.url.path == "/verify":
                return httpx.Response(200, json={"isValid": True, "payer": "0xpayer"})
            return httpx.Response(200, json={"success": True, "transaction": "0xtx", "payer": "0xpayer"})

        facilitator = HttpFacilitator("http://facilitator.test/", transport=_transport(handler))
        payload = {"x402Version": 1, "scheme": "exact", "network": "celo-alfajores", "payload": {}}
        requirements = {"scheme": "exact", "maxAmountRequired": "5000000"}

        verification = await facilitator.verify(payload, requirements)
        settlement = await facilitator.settle(payload, requirements)
        await facilitator.close()

        assert verification["isValid"] is True
        assert settlement["transaction"] == "0xtx"
        assert [path for path, _ in calls] == ["/verify", "/settle"]
        assert calls[0][1] == {
            "x402Version": 1,
            "paymentPayload": payload,
            "paymentRequirements": requirements,
        }

    @pytest.mark.asyncio
    async def test_unavailable(self):
        facilitator = HttpFacilitator(
            "http://facilitator.test", transport=_transport(lambda request: httpx.Response(500))
        )
        with pytest.raises(InternalError):
            await facilitator.verify({}, {})
        await facilitator.close()


class TestMockFacilitator:
    """Test the permissive facilitator."""

    @pytest.mark.asyncio
    async def test_rejections(self):
        assert (await MockFacilitator().verify({}, {}))["isValid"] is True
        assert (await MockFacilitator(invalid_reason="insufficient_funds").verify({}, {}))["isValid"] is False
        assert (await MockFacilitator(settle_error="nonce_used").settle({}, {}))["success"] is False
