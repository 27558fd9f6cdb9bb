"""
In-memory stores for development and tests.
"""

from collections import defaultdict
from threading import RLock
from typing import Any, Dict, List, Optional

from zkx402.core.models import AccessGrant, ContentRecord

from .base import ContentStore, LedgerStore


class InMemoryContentStore(ContentStore):
    """Dict-backed content store guarded by a lock."""

    def __init__(self):
        self._records: Dict[str, ContentRecord] = {}
        self._lock = RLock()

    def create(self, record: ContentRecord) -> bool:
        with self._lock:
            if record.id in self._records:
                return False
            self._records[record.id] = record
            return True

    def get(self, content_id: str) -> Optional[ContentRecord]:
        with self._lock:
            return self._records.get(content_id)

    def mark_verified(self, content_id: str, verifier_result: Dict[str, Any]) -> Optional[ContentRecord]:
        with self._lock:
            record = self._records.get(content_id)
            if record is not None and record.pending:
                record = record.as_verified(verifier_result)
                self._records[content_id] = record
            return record

    def mark_failed(self, content_id: str, failure: str) -> Optional[ContentRecord]:
        with self._lock:
            record = self._records.get(content_id)
            if record is not None and record.pending:
                record = record.as_failed(failure)
                self._records[content_id] = record
            return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class InMemoryLedgerStore(LedgerStore):
    """List-backed ledger, indexed per content id."""

    def __init__(self):
        self._grants: List[AccessGrant] = []
        self._by_content: Dict[str, List[AccessGrant]] = defaultdict(list)
        self._lock = RLock()

    def append(self, grant: AccessGrant) -> None:
        with self._lock:
            self._grants.append(grant)
            self._by_content[grant.content_id].append(grant)

    def list_for(self, content_id: str) -> List[AccessGrant]:
        with self._lock:
            return list(self._by_content.get(content_id, ()))

    def count(self) -> int:
        with self._lock:
            return len(self._grants)
