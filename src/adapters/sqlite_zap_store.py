"""SQLite zap request store.

Implements the core ZapRequestStorePort using a simple SQLite database.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional

from core.models import StoredZapRequest
from core.records import ZapRequest, parse_zap_request

LOGGER = logging.getLogger(__name__)


class SQLiteZapRequestStore:
    """Thin SQLite wrapper that satisfies the ZapRequestStorePort contract.

    Entries older than ``ttl_days`` are never returned and are purged on every
    save.
    """

    def __init__(self, db_path: str, ttl_days: int = 30) -> None:
        self._db_path = db_path
        self._ttl_days = ttl_days

    def _cutoff(self, ttl_days: int) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=ttl_days)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - zap_requests: zap requests we signed, keyed by the invoice's payment hash
        """

        with self._connect() as conn:
            # Fields:
            # - payment_hash: hex payment hash from the BOLT-11 invoice (PRIMARY KEY)
            # - zap_request: kind 9734 event JSON
            # - recipient_pubkey: hex pubkey of the zapped user
            # - stored_at: timestamp used for TTL cleanup
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS zap_requests (
                    payment_hash TEXT PRIMARY KEY,
                    zap_request TEXT NOT NULL,
                    recipient_pubkey TEXT NOT NULL,
                    stored_at TIMESTAMP NOT NULL
                )
                """
            )

    def save(self, payment_hash: str, zap_request: ZapRequest, recipient_pubkey: str) -> None:
        """Upsert the zap request for a payment hash and drop expired ones."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO zap_requests (payment_hash, zap_request, recipient_pubkey, stored_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(payment_hash) DO UPDATE SET
                    zap_request = excluded.zap_request,
                    recipient_pubkey = excluded.recipient_pubkey,
                    stored_at = excluded.stored_at
                """,
                (payment_hash, zap_request.to_json(), recipient_pubkey, now.isoformat()),
            )
        self.cleanup(self._ttl_days)

    def get(self, payment_hash: str) -> Optional[StoredZapRequest]:
        """Return the unexpired zap request for a payment hash, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM zap_requests WHERE payment_hash = ? AND stored_at >= ?",
                (payment_hash, self._cutoff(self._ttl_days).isoformat()),
            ).fetchone()
        if row is None:
            return None

        zap_request = parse_zap_request(row["zap_request"])
        if zap_request is None:
            LOGGER.warning("Ignoring unreadable zap request stored for %s", payment_hash)
            return None
        return StoredZapRequest(
            payment_hash=row["payment_hash"],
            zap_request=zap_request,
            recipient_pubkey=row["recipient_pubkey"],
            stored_at=datetime.fromisoformat(row["stored_at"]),
        )

    def cleanup(self, ttl_days: int) -> int:
        """Delete zap requests older than ``ttl_days`` and return the number removed."""

        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM zap_requests WHERE stored_at < ?",
                (self._cutoff(ttl_days).isoformat(),),
            )
            removed = cur.rowcount
        if removed:
            LOGGER.info("Removed %s expired zap requests", removed)
        return removed
