"""
Content registry.

Stores content records and brokers verification with the external proving
service. A record becomes verified at most once, and only when the prover's
journal attests to the same digest the uploader claimed. Every failure is
terminal for its record: a new upload gets a new id.
"""

import asyncio
import logging
import secrets
from typing import Optional

from zkx402.backends.base import ContentStore
from zkx402.connectors.proving_client import ProvingClient

from .errors import (
    TERMINAL_FAILURES,
    HashMismatch,
    InternalError,
    InvalidInput,
    NotFound,
    ProofFailed,
    ProofTimeout,
)
from .models import ContentRecord

logger = logging.getLogger(__name__)

DEFAULT_PROOF_TIMEOUT = 60.0


class ContentRegistry:
    """
    Owns the ContentRecord lifecycle.

    Args:
        store: Repository holding the records
        prover: Proving service collaborator
        proof_timeout: Default seconds to wait for a proof
    """

    ID_BYTES = 8
    MAX_ID_ATTEMPTS = 5

    def __init__(
        self,
        store: ContentStore,
        prover: ProvingClient,
        proof_timeout: float = DEFAULT_PROOF_TIMEOUT,
    ):
        self.store = store
        self.prover = prover
        self.proof_timeout = proof_timeout

    def register(self, reference: str, content_hash: str, proof_job_id: str) -> str:
        """
        Register content as unverified.

        Returns:
            Freshly generated content id

        Raises:
            InvalidInput: if any argument is empty
        """
        missing = [
            name
            for name, value in (
                ("contentRef", reference),
                ("contentHash", content_hash),
                ("proofJobHash", proof_job_id),
            )
            if not isinstance(value, str) or not value.strip()
        ]
        if missing:
            raise InvalidInput("missing required fields", detail=missing)

        for _ in range(self.MAX_ID_ATTEMPTS):
            record = ContentRecord(
                id=secrets.token_hex(self.ID_BYTES),
                reference=reference,
                content_hash=content_hash,
                proof_job_id=proof_job_id,
            )
            if self.store.create(record):
                logger.info(f"Registered content {record.id} (proof job {proof_job_id[:16]})")
                return record.id

        raise RuntimeError("could not allocate a unique content id")

    def get(self, content_id: str) -> ContentRecord:
        record = self.store.get(content_id)
        if record is None:
            raise NotFound(f"content {content_id} not found")
        return record

    async def await_verification(
        self,
        content_id: str,
        timeout: Optional[float] = None,
    ) -> ContentRecord:
        """
        Wait for the prover and settle the record's verification state.

        Only the calling task is suspended. Expiry cancels the wait and ends
        in ProofTimeout.

        Args:
            content_id: Registered content id
            timeout: Seconds to wait (default: registry proof_timeout)

        Returns:
            The verified record

        Raises:
            NotFound: unknown id
            ProofTimeout: prover did not report in time
            ProofFailed: prover reported a non-completed status
            HashMismatch: journal digest absent or different
            InternalError: proving service unreachable; the record is marked failed
        """
        record = self.get(content_id)
        if record.verified:
            return record
        if record.verification_error:
            raise TERMINAL_FAILURES[record.verification_error](
                f"content {content_id} failed verification",
                detail=record.verification_error,
            )

        timeout = self.proof_timeout if timeout is None else timeout

        try:
            result = await asyncio.wait_for(
                self.prover.wait_for_result(record.proof_job_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self.store.mark_failed(content_id, ProofTimeout.failure)
            logger.warning(f"Proof wait for {content_id} timed out after {timeout}s")
            raise ProofTimeout(f"proof not completed within {timeout}s", detail="timeout")
        except InternalError:
            self.store.mark_failed(content_id, ProofFailed.failure)
            logger.warning(f"Proving service failed for {content_id}, record marked failed")
            raise

        if result is None or not result.completed:
            status = result.status if result is not None else "failed"
            self.store.mark_failed(content_id, ProofFailed.failure)
            logger.warning(f"Proof job for {content_id} ended with status {status}")
            raise ProofFailed(f"proof job ended with status {status}", detail=status)

        claimed = result.claimed_digest
        if claimed is None or claimed.lower() != record.content_hash.lower():
            self.store.mark_failed(content_id, HashMismatch.failure)
            logger.warning(
                f"Content hash mismatch for {content_id}: "
                f"claimed {record.content_hash}, proven {claimed}"
            )
            raise HashMismatch("proven digest does not match contentHash", detail=result.journal)

        verified = self.store.mark_verified(content_id, result.model_dump())
        if not verified.verified:
            # Another waiter settled the record first
            raise TERMINAL_FAILURES[verified.verification_error](
                f"content {content_id} failed verification",
                detail=verified.verification_error,
            )
        logger.info(f"✅ Content {content_id} verified")
        return verified
