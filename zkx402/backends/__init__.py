"""
Storage backends for zkx402.

Supports in-memory (development, tests) and SQLite (durable) stores.
"""

from .base import ContentStore, LedgerStore
from .memory import InMemoryContentStore, InMemoryLedgerStore
from .sqlite_backend import SQLiteContentStore, SQLiteLedgerStore

__all__ = [
    "ContentStore",
    "LedgerStore",
    "InMemoryContentStore",
    "InMemoryLedgerStore",
    "SQLiteContentStore",
    "SQLiteLedgerStore",
]
