"""
Repository interfaces for content records and the access ledger.

Core logic depends only on these interfaces; `memory` and `sqlite_backend`
provide the implementations.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from zkx402.core.models import AccessGrant, ContentRecord


class ContentStore(ABC):
    """Keyed storage for ContentRecord with a single-shot verified transition."""

    @abstractmethod
    def create(self, record: ContentRecord) -> bool:
        """
        Insert a new record.

        Returns:
            False if a record with the same id already exists
        """

    @abstractmethod
    def get(self, content_id: str) -> Optional[ContentRecord]:
        """Fetch a record, or None if unknown."""

    @abstractmethod
    def mark_verified(self, content_id: str, verifier_result: Dict[str, Any]) -> Optional[ContentRecord]:
        """
        Flip `verified` to True and store the prover result.

        Only applies to a pending record (unverified, no recorded failure).
        Returns the record as stored after the call, or None if unknown.
        """

    @abstractmethod
    def mark_failed(self, content_id: str, failure: str) -> Optional[ContentRecord]:
        """Record a terminal verification failure on a pending record."""

    def close(self) -> None:
        """Release resources held by the store."""


class LedgerStore(ABC):
    """Append-only storage for AccessGrant."""

    @abstractmethod
    def append(self, grant: AccessGrant) -> None:
        """Append a grant; insertion order is read order."""

    @abstractmethod
    def list_for(self, content_id: str) -> List[AccessGrant]:
        """All grants for a content id, oldest first."""

    @abstractmethod
    def count(self) -> int:
        """Total number of grants."""

    def close(self) -> None:
        """Release resources held by the store."""
