"""Local record store for the sync client.

This module provides:
- Record: One synchronized record with its sync-state tag
- LocalRecordStore: SQLite-based persisted collection, partitioned by
  domain and owner, plus the per-(domain, owner) sync cursors

Architecture:
    All domains share one ``records`` table keyed by (domain, owner, id).
    Every operation touches a single row, so consistency is per record; nothing
    here needs a cross-domain transaction.

    Cursors live in their own table and can only move forward: writing
    an older value is silently ignored by the upsert.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from ludiary.core.types import Domain, SyncStatus

logger = logging.getLogger(__name__)


@dataclass
class Record:
    """A locally stored record.

    Attributes:
        id: Stable identifier shared with the server.
        owner_id: Partition key (user or group id).
        payload: Domain-specific fields.
        sync_status: CLEAN, PENDING or DELETED_PENDING.
        updated_at_local: Local clock (epoch millis) of the last local write.
        updated_at_remote: Server timestamp, None until first push/pull.
        version: Monotonically increasing edit counter.
    """

    id: str
    owner_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    sync_status: SyncStatus = SyncStatus.PENDING
    updated_at_local: int = 0
    updated_at_remote: int | None = None
    version: int = 0

    @property
    def is_deleted(self) -> bool:
        """True for a tombstone awaiting acknowledgement."""
        return self.sync_status is SyncStatus.DELETED_PENDING

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Record:
        """Create Record from database row."""
        payload: dict[str, Any] = {}
        if row["payload"]:
            payload = json.loads(row["payload"])
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            payload=payload,
            sync_status=SyncStatus(row["sync_status"]),
            updated_at_local=row["updated_at_local"],
            updated_at_remote=row["updated_at_remote"],
            version=row["version"],
        )

    def copy(self, **changes: Any) -> Record:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


class LocalRecordStore:
    """SQLite-based store for synchronized records and sync cursors."""

    def __init__(self, db_path: Path) -> None:
        """Initialize local store database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS records (
                domain TEXT NOT NULL,
                id TEXT NOT NULL,
                owner_id TEXT NOT NULL,
                payload TEXT,
                sync_status TEXT NOT NULL,
                updated_at_local INTEGER NOT NULL,
                updated_at_remote INTEGER,
                version INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (domain, owner_id, id)
            );

            CREATE INDEX IF NOT EXISTS idx_records_owner_status
                ON records (domain, owner_id, sync_status);

            -- One watermark per (domain, owner)
            CREATE TABLE IF NOT EXISTS cursors (
                domain TEXT NOT NULL,
                owner_id TEXT NOT NULL,
                last_synced_at INTEGER NOT NULL,
                PRIMARY KEY (domain, owner_id)
            );

            -- Key-value sync state
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Record operations ===

    def get(self, domain: Domain, owner_id: str, record_id: str) -> Record | None:
        """Get a record by id within an owner partition.

        Returns:
            Record if found (tombstones included), None otherwise.
        """
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM records WHERE domain = ? AND owner_id = ? AND id = ?",
                (domain.value, owner_id, record_id),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return Record.from_row(row)

    def list_records(
        self,
        domain: Domain,
        owner_id: str,
        include_deleted: bool = False,
    ) -> list[Record]:
        """List records of one owner partition, ordered by id."""
        query = "SELECT * FROM records WHERE domain = ? AND owner_id = ?"
        if not include_deleted:
            query += " AND sync_status != 'DELETED_PENDING'"
        query += " ORDER BY id"
        with self._lock:
            rows = self._conn.execute(query, (domain.value, owner_id)).fetchall()
        return [Record.from_row(row) for row in rows]

    def list_pending(self, domain: Domain, owner_id: str) -> list[Record]:
        """List PENDING and DELETED_PENDING records in queue order.

        Queue order is the order of the local writes (updated_at_local),
        with the id as a stable tie-breaker.
        """
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM records
                WHERE domain = ? AND owner_id = ? AND sync_status != 'CLEAN'
                ORDER BY updated_at_local, id
                """,
                (domain.value, owner_id),
            ).fetchall()
        return [Record.from_row(row) for row in rows]

    def count_pending(self, domain: Domain, owner_id: str) -> int:
        """Count records still waiting to be pushed."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT COUNT(*) AS n FROM records
                WHERE domain = ? AND owner_id = ? AND sync_status != 'CLEAN'
                """,
                (domain.value, owner_id),
            ).fetchone()
        return int(row["n"])

    def upsert(self, domain: Domain, record: Record) -> None:
        """Insert or replace a record."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO records (
                    domain, id, owner_id, payload, sync_status,
                    updated_at_local, updated_at_remote, version
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    domain.value,
                    record.id,
                    record.owner_id,
                    json.dumps(record.payload),
                    record.sync_status.value,
                    record.updated_at_local,
                    record.updated_at_remote,
                    record.version,
                ),
            )

    def mark_clean(
        self,
        domain: Domain,
        owner_id: str,
        record_id: str,
        remote_timestamp: int,
        version: int,
        pushed_local_ts: int | None = None,
    ) -> bool:
        """Mark a record as in sync with the server.

        Args:
            domain: Record domain.
            owner_id: Owner partition.
            record_id: Record id.
            remote_timestamp: updated_at returned by the server.
            version: Version acknowledged by the server.
            pushed_local_ts: If given, only mark clean when the record was
                not edited again after this local timestamp was pushed.

        Returns:
            True if the row was updated.
        """
        query = """
            UPDATE records
            SET sync_status = 'CLEAN', updated_at_remote = ?, version = ?
            WHERE domain = ? AND owner_id = ? AND id = ?
        """
        params: list[Any] = [remote_timestamp, version, domain.value, owner_id, record_id]
        if pushed_local_ts is not None:
            query += " AND updated_at_local = ?"
            params.append(pushed_local_ts)
        with self._lock:
            cursor = self._conn.execute(query, params)
        return cursor.rowcount > 0

    def soft_delete(
        self, domain: Domain, owner_id: str, record_id: str, local_ts: int
    ) -> bool:
        """Turn a record into a tombstone awaiting remote acknowledgement.

        Returns:
            True if the record existed.
        """
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE records
                SET sync_status = 'DELETED_PENDING',
                    updated_at_local = ?,
                    version = version + 1
                WHERE domain = ? AND owner_id = ? AND id = ?
                """,
                (local_ts, domain.value, owner_id, record_id),
            )
        return cursor.rowcount > 0

    def purge(self, domain: Domain, owner_id: str, record_id: str) -> None:
        """Hard-delete a record (acknowledged tombstone or remote delete)."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM records WHERE domain = ? AND owner_id = ? AND id = ?",
                (domain.value, owner_id, record_id),
            )

    def reassign_owner(self, old_owner_id: str, new_owner_id: str) -> int:
        """Move every record and cursor of one owner to another.

        Used when a local-only install registers: records written under
        the local placeholder user become the registered user's, still
        PENDING, so the first online pass pushes them.

        Returns:
            Number of records moved.
        """
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE OR IGNORE records SET owner_id = ? WHERE owner_id = ?",
                (new_owner_id, old_owner_id),
            )
            self._conn.execute("DELETE FROM cursors WHERE owner_id = ?", (old_owner_id,))
        if cursor.rowcount:
            logger.info(
                "Moved %d records from %s to %s", cursor.rowcount, old_owner_id, new_owner_id
            )
        return cursor.rowcount

    # === Cursors ===

    def get_cursor(self, domain: Domain, owner_id: str) -> int | None:
        """Get the last-synced watermark, None if never synced."""
        with self._lock:
            row = self._conn.execute(
                "SELECT last_synced_at FROM cursors WHERE domain = ? AND owner_id = ?",
                (domain.value, owner_id),
            ).fetchone()
        return int(row["last_synced_at"]) if row else None

    def set_cursor(self, domain: Domain, owner_id: str, value: int) -> int:
        """Advance the watermark. Older values never overwrite newer ones.

        Returns:
            The cursor value stored after the call.
        """
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO cursors (domain, owner_id, last_synced_at)
                VALUES (?, ?, ?)
                ON CONFLICT (domain, owner_id) DO UPDATE
                SET last_synced_at = MAX(last_synced_at, excluded.last_synced_at)
                """,
                (domain.value, owner_id, value),
            )
        stored = self.get_cursor(domain, owner_id)
        if stored is not None and stored > value:
            logger.debug(
                "Cursor %s/%s kept at %d (ignored older %d)",
                domain.value, owner_id, stored, value,
            )
        return stored if stored is not None else value

    def clear_cursor(self, domain: Domain, owner_id: str) -> None:
        """Forget a cursor so the next pass runs a full initial sync."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM cursors WHERE domain = ? AND owner_id = ?",
                (domain.value, owner_id),
            )

    # === Sync state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_last_sync_at(self) -> int | None:
        """Get timestamp (epoch millis) of last successful sync."""
        value = self.get_state("last_sync_at")
        return int(value) if value else None

    def set_last_sync_at(self, timestamp: int) -> None:
        """Set timestamp (epoch millis) of last successful sync."""
        self.set_state("last_sync_at", str(timestamp))

    def is_auto_sync_enabled(self) -> bool:
        """Whether the periodic sync job should run (default True)."""
        return self.get_state("auto_sync_enabled") != "0"

    def set_auto_sync_enabled(self, enabled: bool) -> None:
        """Enable or disable the periodic sync job."""
        self.set_state("auto_sync_enabled", "1" if enabled else "0")
