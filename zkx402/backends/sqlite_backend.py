"""
SQLite backend: durable storage for content records and the access ledger.

Key Features:
- One database file shared by both stores
- WAL journal for concurrent readers
- Opaque payloads (prover results, receipts) serialized with msgpack
- Conditional UPDATE makes the verified transition single-shot
- Thread-safe operations
"""

import logging
import sqlite3
from datetime import datetime
from threading import RLock
from typing import Any, Dict, List, Optional

import msgpack

from zkx402.core.models import AccessGrant, ContentRecord

from .base import ContentStore, LedgerStore

logger = logging.getLogger(__name__)


def _pack(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    return msgpack.packb(value, use_bin_type=True, default=str)


def _unpack(blob: Optional[bytes]) -> Any:
    if blob is None:
        return None
    return msgpack.unpackb(blob, raw=False)


class _SQLiteStore:
    """Connection handling shared by the SQLite stores."""

    SCHEMA = ""

    def __init__(self, db_path: str = "zkx402.db", enable_wal: bool = True):
        """
        Args:
            db_path: Path to SQLite database file
            enable_wal: Enable Write-Ahead Logging for better concurrency
        """
        self.db_path = str(db_path)
        self._lock = RLock()
        self._init_db(enable_wal)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self, enable_wal: bool) -> None:
        with self._lock:
            conn = self._connect()
            try:
                if enable_wal:
                    conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(self.SCHEMA)
                conn.commit()
            finally:
                conn.close()


class SQLiteContentStore(_SQLiteStore, ContentStore):
    """Content records in the `contents` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS contents (
            id TEXT PRIMARY KEY,
            reference TEXT NOT NULL,
            content_hash TEXT NOT NULL,
            proof_job_id TEXT NOT NULL,
            verified INTEGER NOT NULL DEFAULT 0,
            verifier_result BLOB,
            verification_error TEXT,
            created_at TEXT NOT NULL
        );
    """

    _COLUMNS = (
        "id, reference, content_hash, proof_job_id, verified, "
        "verifier_result, verification_error, created_at"
    )

    def create(self, record: ContentRecord) -> bool:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO contents ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.reference,
                        record.content_hash,
                        record.proof_job_id,
                        int(record.verified),
                        _pack(record.verifier_result),
                        record.verification_error,
                        record.created_at.isoformat(),
                    ),
                )
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()

    def get(self, content_id: str) -> Optional[ContentRecord]:
        with self._lock:
            conn = self._connect()
            try:
                row = conn.execute(
                    f"SELECT {self._COLUMNS} FROM contents WHERE id = ?",
                    (content_id,),
                ).fetchone()
            finally:
                conn.close()

        if not row:
            return None
        return self._row_to_record(row)

    def mark_verified(self, content_id: str, verifier_result: Dict[str, Any]) -> Optional[ContentRecord]:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    """
                    UPDATE contents
                    SET verified = 1, verifier_result = ?
                    WHERE id = ? AND verified = 0 AND verification_error IS NULL
                    """,
                    (_pack(verifier_result), content_id),
                )
                conn.commit()
                if cursor.rowcount == 0:
                    logger.debug(f"Verified transition skipped for {content_id} (not pending)")
            finally:
                conn.close()
            return self.get(content_id)

    def mark_failed(self, content_id: str, failure: str) -> Optional[ContentRecord]:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    UPDATE contents
                    SET verification_error = ?
                    WHERE id = ? AND verified = 0 AND verification_error IS NULL
                    """,
                    (failure, content_id),
                )
                conn.commit()
            finally:
                conn.close()
            return self.get(content_id)

    @staticmethod
    def _row_to_record(row: tuple) -> ContentRecord:
        return ContentRecord(
            id=row[0],
            reference=row[1],
            content_hash=row[2],
            proof_job_id=row[3],
            verified=bool(row[4]),
            verifier_result=_unpack(row[5]),
            verification_error=row[6],
            created_at=datetime.fromisoformat(row[7]),
        )


class SQLiteLedgerStore(_SQLiteStore, LedgerStore):
    """Access grants in the append-only `accesses` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS accesses (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            content_id TEXT NOT NULL,
            payer TEXT NOT NULL,
            method TEXT NOT NULL,
            price TEXT NOT NULL,
            tier TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            receipt BLOB
        );
        CREATE INDEX IF NOT EXISTS idx_accesses_content
        ON accesses(content_id, seq);
    """

    def append(self, grant: AccessGrant) -> None:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT INTO accesses
                    (content_id, payer, method, price, tier, timestamp, receipt)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        grant.content_id,
                        grant.payer,
                        grant.method,
                        grant.price,
                        grant.tier,
                        grant.timestamp.isoformat(),
                        _pack(grant.receipt),
                    ),
                )
                conn.commit()
            finally:
                conn.close()

    def list_for(self, content_id: str) -> List[AccessGrant]:
        with self._lock:
            conn = self._connect()
            try:
                rows = conn.execute(
                    """
                    SELECT content_id, payer, method, price, tier, timestamp, receipt
                    FROM accesses
                    WHERE content_id = ?
                    ORDER BY seq ASC
                    """,
                    (content_id,),
                ).fetchall()
            finally:
                conn.close()

        return [
            AccessGrant(
                content_id=row[0],
                payer=row[1],
                method=row[2],
                price=row[3],
                tier=row[4],
                timestamp=datetime.fromisoformat(row[5]),
                receipt=_unpack(row[6]),
            )
            for row in rows
        ]

    def count(self) -> int:
        with self._lock:
            conn = self._connect()
            try:
                return conn.execute("SELECT COUNT(*) FROM accesses").fetchone()[0]
            finally:
                conn.close()
