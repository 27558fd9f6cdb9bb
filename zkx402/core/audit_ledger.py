"""
Append-only audit ledger of completed deliveries.
"""

import logging
from typing import List

from zkx402.backends.base import LedgerStore

from .models import AccessGrant

logger = logging.getLogger(__name__)


class AuditLedger:
    """Owns the AccessGrant lifecycle: grants are appended, never changed."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def append(self, grant: AccessGrant) -> None:
        self.store.append(grant)
        logger.debug(f"Ledger append: {grant.content_id} paid {grant.price} by {grant.payer}")

    def list_for(self, content_id: str) -> List[AccessGrant]:
        """Grants for a content id, oldest first. Empty when none exist."""
        return self.store.list_for(content_id)

    def __len__(self) -> int:
        return self.store.count()
