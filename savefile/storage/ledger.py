"""Snapshot metadata ledger in SQLite.

One database file holds one table per profile::

    backups_<profile> (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tag TEXT NOT NULL,
        timestamp TEXT NOT NULL      -- UTC, ISO 8601
    )

AUTOINCREMENT keeps ids monotonic: a deleted id is never handed out again
for as long as the table exists. Table names are built from validated
profile names and always quoted.
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from savefile.config.paths import ledger_table
from savefile.core.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Metadata for one backup. Ids are unique per profile, not globally."""
    id: int
    tag: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tag": self.tag,
            "timestamp": self.timestamp.isoformat(),
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    return Snapshot(
        id=row["id"],
        tag=row["tag"],
        timestamp=_parse_timestamp(row["timestamp"]),
    )


class BackupLedger:
    """Thread-safe SQLite ledger of snapshot metadata, one table per profile."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        # Verify the file opens before any profile is touched
        self._get_connection()

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "connection", None)
        if conn is None or conn not in self._connections:
            try:
                # Used only by this thread, but close() may run on another
                conn = sqlite3.connect(str(self.db_path), timeout=10, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            except sqlite3.Error as exc:
                raise StorageError(f"cannot open ledger {self.db_path}: {exc}") from exc
            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _ensure_table(self, conn: sqlite3.Connection, profile: str) -> str:
        table = ledger_table(profile)
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tag TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)
        return table

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, profile: str, tag: str, timestamp: datetime = None) -> Snapshot:
        """Record a new snapshot and return it with its allocated id."""
        ts = timestamp or utc_now()
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        ts = ts.astimezone(timezone.utc)
        conn = self._get_connection()
        try:
            table = self._ensure_table(conn, profile)
            cursor = conn.execute(
                f"INSERT INTO {table} (tag, timestamp) VALUES (?, ?)",
                (tag, ts.isoformat()),
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"failed to record backup for {profile}: {exc}") from exc
        logger.debug("Ledger insert %s id=%d", profile, cursor.lastrowid)
        return Snapshot(id=cursor.lastrowid, tag=tag, timestamp=ts)

    def remove(self, profile: str, backup_id: int) -> bool:
        """Delete one row. Returns False if the id was not present."""
        conn = self._get_connection()
        try:
            table = self._ensure_table(conn, profile)
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (backup_id,))
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"failed to remove backup {backup_id}: {exc}") from exc
        return cursor.rowcount > 0

    def drop(self, profile: str):
        """Drop the profile's whole table (its id sequence restarts)."""
        conn = self._get_connection()
        try:
            conn.execute(f"DROP TABLE IF EXISTS {ledger_table(profile)}")
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"failed to drop ledger for {profile}: {exc}") from exc
        logger.debug("Dropped ledger table for %s", profile)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def select(self, profile: str, backup_id: int) -> Snapshot | None:
        conn = self._get_connection()
        try:
            table = self._ensure_table(conn, profile)
            row = conn.execute(
                f"SELECT id, tag, timestamp FROM {table} WHERE id = ?", (backup_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to read backup {backup_id}: {exc}") from exc
        return _row_to_snapshot(row) if row else None

    def select_all(self, profile: str) -> list[Snapshot]:
        conn = self._get_connection()
        try:
            table = self._ensure_table(conn, profile)
            rows = conn.execute(
                f"SELECT id, tag, timestamp FROM {table} ORDER BY id"
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to list backups for {profile}: {exc}") from exc
        return [_row_to_snapshot(r) for r in rows]

    def close(self):
        """Close the connections opened by every thread."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local.connection = None
        logger.debug("Closed %d ledger connection(s)", len(connections))
