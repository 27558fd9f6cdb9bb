"""
Proving Service Connector

Connects the content registry to the external proving service that
authenticates uploaded content. The registry hands over a proof job handle and
waits for the job to reach a terminal status; the journal of a completed job
carries the content digest the prover attested to.

The connector never enforces a deadline itself: callers bound the wait with
`asyncio.wait_for`, which cancels the polling loop on expiry.
"""

import asyncio
from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger
from pydantic import ValidationError

from zkx402.core.errors import InternalError
from zkx402.core.models import ProvingResult

TERMINAL_STATUSES = {"completed", "failed", "error", "cancelled"}


class ProvingClient(Protocol):
    """Anything that can report the outcome of a proof job."""

    async def wait_for_result(self, job_id: str) -> ProvingResult:
        ...


class HttpProvingClient:
    """
    Polls a proving service over HTTP.

    Expects `GET {base_url}/jobs/{job_id}` to answer with
    `{"status": ..., "journal": ..., "error": ...}`.
    """

    def __init__(
        self,
        base_url: str,
        poll_interval: float = 1.0,
        request_timeout: float = 10.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize proving client.

        Args:
            base_url: Proving service root URL
            poll_interval: Seconds between status polls
            request_timeout: Per-request HTTP timeout in seconds
            api_key: Optional bearer token for the service
            transport: Custom httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=request_timeout,
            headers=headers,
            transport=transport,
        )

    async def fetch_status(self, job_id: str) -> ProvingResult:
        """Fetch the current status of a proof job once."""
        try:
            response = await self._client.get(f"/jobs/{job_id}")
            response.raise_for_status()
            return ProvingResult.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.error("Proving service request failed for {}: {}", job_id, e)
            raise InternalError(f"proving service unavailable: {e}") from e
        except (ValidationError, ValueError) as e:
            logger.error("Malformed proving result for {}: {}", job_id, e)
            raise InternalError("malformed proving result") from e

    async def wait_for_result(self, job_id: str) -> ProvingResult:
        """Poll until the job reaches a terminal status."""
        while True:
            result = await self.fetch_status(job_id)
            if result.status in TERMINAL_STATUSES:
                logger.debug("Proof job {} finished: {}", job_id, result.status)
                return result
            await asyncio.sleep(self.poll_interval)

    async def close(self):
        await self._client.aclose()


class MockProvingClient:
    """
    Scripted prover for development and tests.

    Jobs resolve to whatever was registered with `complete()` or `fail()`;
    unknown jobs stay pending forever, which exercises the timeout path.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self._results: Dict[str, ProvingResult] = {}
        self.calls: Dict[str, int] = {}

    def complete(self, job_id: str, content_hash: Optional[str], **extra: Any) -> None:
        journal = {"contentHash": content_hash} if content_hash is not None else {}
        self._results[job_id] = ProvingResult(status="completed", journal=journal, **extra)

    def fail(self, job_id: str, status: str = "failed", error: Optional[str] = None) -> None:
        self._results[job_id] = ProvingResult(status=status, error=error)

    def set_result(self, job_id: str, result: ProvingResult) -> None:
        self._results[job_id] = result

    async def wait_for_result(self, job_id: str) -> ProvingResult:
        self.calls[job_id] = self.calls.get(job_id, 0) + 1
        if self.delay:
            await asyncio.sleep(self.delay)

        result = self._results.get(job_id)
        if result is None:
            logger.debug("📦 [MOCK] Proof job {} pending indefinitely", job_id)
            await asyncio.Event().wait()
        return result

    async def close(self):
        pass
