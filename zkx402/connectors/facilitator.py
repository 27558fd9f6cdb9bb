"""
x402 Facilitator Connector

The facilitator verifies and settles x402 payment payloads on behalf of the
resource server, so the service never touches keys or chain state itself.

    POST {url}/verify  {x402Version, paymentPayload, paymentRequirements}
        -> {"isValid": bool, "invalidReason": str?, "payer": str?}
    POST {url}/settle  {x402Version, paymentPayload, paymentRequirements}
        -> {"success": bool, "errorReason": str?, "transaction": str?,
            "network": str?, "payer": str?}
"""

from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger

from zkx402.core.errors import InternalError

X402_VERSION = 1


class Facilitator(Protocol):
    async def verify(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def settle(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HttpFacilitator:
    """
    Facilitator reached over HTTP.

    Args:
        url: Facilitator root URL
        request_timeout: Per-request HTTP timeout in seconds
        api_key: Optional bearer token
        transport: Custom httpx transport (tests)
    """

    def __init__(
        self,
        url: str,
        request_timeout: float = 15.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=self.url,
            timeout=request_timeout,
            headers=headers,
            transport=transport,
        )

    async def _post(self, path: str, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "x402Version": X402_VERSION,
            "paymentPayload": payload,
            "paymentRequirements": requirements,
        }
        try:
            response = await self._client.post(path, json=body)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Facilitator {} failed: {}", path, e)
            raise InternalError(f"facilitator unavailable: {e}") from e

        if not isinstance(result, dict):
            raise InternalError("malformed facilitator response")
        return result

    async def verify(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/verify", payload, requirements)

    async def settle(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/settle", payload, requirements)

    async def close(self):
        await self._client.aclose()


class MockFacilitator:
    """
    Accepts every payment unless told otherwise.

    Set `invalid_reason` to reject at verification, or `settle_error` to
    reject at settlement. Every call is recorded for assertions.
    """

    def __init__(
        self,
        payer: str = "0x0000000000000000000000000000000000000001",
        invalid_reason: Optional[str] = None,
        settle_error: Optional[str] = None,
    ):
        self.payer = payer
        self.invalid_reason = invalid_reason
        self.settle_error = settle_error
        self.verified = []
        self.settled = []

    async def verify(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        self.verified.append((payload, requirements))
        if self.invalid_reason:
            return {"isValid": False, "invalidReason": self.invalid_reason, "payer": self.payer}
        return {"isValid": True, "payer": self.payer}

    async def settle(self, payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        self.settled.append((payload, requirements))
        logger.debug("📦 [MOCK] Settling {} on {}", requirements.get("maxAmountRequired"), requirements.get("network"))
        if self.settle_error:
            return {"success": False, "errorReason": self.settle_error, "payer": self.payer}
        return {
            "success": True,
            "transaction": f"0xmock{len(self.settled):060x}",
            "network": requirements.get("network"),
            "payer": self.payer,
        }

    async def close(self):
        pass
