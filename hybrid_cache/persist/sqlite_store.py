"""
SQLite-backed metadata index for the hybrid cache.

One table keyed by cache key:
- inline_value: value bytes for small entries
- blob_reference: blob file name for offloaded entries
- expires_at: absolute expiry (seconds since epoch)

Exactly one of inline_value / blob_reference is set per row, enforced by a
CHECK constraint. An index on expires_at backs the purge sweep.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .records import CacheRecord, StoredValue, from_columns, to_columns

logger = logging.getLogger(__name__)


DDL = (
    """
    CREATE TABLE IF NOT EXISTS cache (
        key TEXT PRIMARY KEY,
        inline_value BLOB,
        blob_reference TEXT,
        expires_at REAL NOT NULL,
        CHECK ((inline_value IS NULL) != (blob_reference IS NULL))
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_cache_expires_at ON cache (expires_at)",
)


class MetadataIndex:
    """
    File-backed SQLite index of cache records.

    Runs in WAL mode so readers are not blocked by a writer. Writes share one
    connection guarded by a lock and in autocommit mode: every single-statement
    write persists immediately. Reads go through a per-thread connection that
    never takes that lock, so a lookup proceeds while another thread is
    inside a write or a purge transaction and sees the last committed state.
    """

    def __init__(self, db_path: Path):
        """
        Open (or create) the index at given path.

        Args:
            db_path: Path to SQLite database file

        Raises:
            sqlite3.Error: If the database cannot be opened or initialized
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._local = threading.local()
        self._readers: list[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()
        self._closed = False

        self._conn = self._connect()
        try:
            # Enable WAL mode for better concurrency
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._init_tables()
        except sqlite3.Error:
            self._conn.close()
            raise

        logger.debug(f"Opened metadata index {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,  # Allow multi-threaded access
            timeout=10.0,
            isolation_level=None,
        )

    def _init_tables(self) -> None:
        """Create cache table and expiry index if they don't exist."""
        for statement in DDL:
            self._conn.execute(statement)

    def _reader(self) -> sqlite3.Connection:
        """Read connection owned by the calling thread."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            with self._readers_lock:
                if self._closed:
                    raise sqlite3.ProgrammingError("Cannot operate on a closed index")
                conn = self._connect()
                self._readers.append(conn)
            self._local.conn = conn
        return conn

    def _read(self, sql: str, params: tuple = ()) -> list[tuple]:
        # fetchall steps the statement to completion, ending its read snapshot
        return self._reader().execute(sql, params).fetchall()

    def upsert(self, key: str, value: StoredValue, expires_at: float) -> None:
        """
        Insert or replace the record for a key.

        Args:
            key: Cache key
            value: InlineValue or BlobReference
            expires_at: Absolute expiry timestamp
        """
        inline_value, blob_reference = to_columns(value)
        with self._lock:
            self._conn.execute(
                "INSERT INTO cache (key, inline_value, blob_reference, expires_at)"
                " VALUES (?, ?, ?, ?)"
                " ON CONFLICT(key) DO UPDATE SET"
                " inline_value = excluded.inline_value,"
                " blob_reference = excluded.blob_reference,"
                " expires_at = excluded.expires_at",
                (key, inline_value, blob_reference, expires_at),
            )

    def lookup(self, key: str) -> Optional[CacheRecord]:
        """
        Read the full record for a key.

        Returns:
            CacheRecord if found, None otherwise
        """
        rows = self._read(
            "SELECT inline_value, blob_reference, expires_at FROM cache WHERE key = ?",
            (key,),
        )
        if not rows:
            return None
        inline_value, blob_reference, expires_at = rows[0]
        return CacheRecord(
            key=key,
            value=from_columns(inline_value, blob_reference),
            expires_at=expires_at,
        )

    def lookup_value(self, key: str) -> Optional[StoredValue]:
        """Stored value for a key, or None if absent."""
        rows = self._read(
            "SELECT inline_value, blob_reference FROM cache WHERE key = ?",
            (key,),
        )
        return from_columns(*rows[0]) if rows else None

    def lookup_expiry(self, key: str) -> Optional[float]:
        """Expiry timestamp for a key, or None if absent."""
        rows = self._read("SELECT expires_at FROM cache WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def lookup_blob_reference(self, key: str) -> Optional[str]:
        """Blob file name for a key, or None if absent or stored inline."""
        rows = self._read("SELECT blob_reference FROM cache WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def remove(self, key: str) -> None:
        """
        Delete the record for a key. No error if absent.

        Args:
            key: Cache key
        """
        with self._lock:
            self._conn.execute("DELETE FROM cache WHERE key = ?", (key,))

    def scan_expired_before(self, threshold: float) -> list[tuple[str, Optional[str]]]:
        """
        List records whose expiry is strictly before ``threshold``.

        Returns:
            List of (key, blob_reference or None)
        """
        return self._scan_expired(self._reader(), threshold)

    @staticmethod
    def _scan_expired(conn: sqlite3.Connection, threshold: float) -> list[tuple[str, Optional[str]]]:
        rows = conn.execute(
            "SELECT key, blob_reference FROM cache WHERE expires_at < ?",
            (threshold,),
        ).fetchall()
        return [(row[0], row[1]) for row in rows]

    def delete_expired_before(self, threshold: float) -> int:
        """
        Delete records whose expiry is strictly before ``threshold``.

        Returns:
            Number of rows deleted
        """
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM cache WHERE expires_at < ?",
                (threshold,),
            )
        return cursor.rowcount

    def take_expired_before(self, threshold: float) -> list[tuple[str, Optional[str]]]:
        """
        Scan and delete expired records in one IMMEDIATE transaction.

        Both statements run on the write connection inside the transaction,
        so the returned rows are exactly the rows deleted.

        Returns:
            List of (key, blob_reference or None) that were deleted
        """
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                rows = self._scan_expired(self._conn, threshold)
                deleted = self.delete_expired_before(threshold)
                self._conn.execute("COMMIT")
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise

        if deleted != len(rows):
            logger.warning(f"Expired scan found {len(rows)} rows but deleted {deleted}")
        return rows

    def blob_references(self) -> set[str]:
        """Names of all blob files referenced by the index."""
        rows = self._read("SELECT blob_reference FROM cache WHERE blob_reference IS NOT NULL")
        return {row[0] for row in rows}

    def stats(self) -> dict:
        """
        Get statistics for the index.

        Returns:
            Dict with count, inline_count, blob_count, inline_bytes,
            oldest_expires_at, newest_expires_at
        """
        row = self._read("""
            SELECT
                COUNT(*) as count,
                COUNT(inline_value) as inline_count,
                COUNT(blob_reference) as blob_count,
                SUM(LENGTH(inline_value)) as inline_bytes,
                MIN(expires_at) as oldest_expires_at,
                MAX(expires_at) as newest_expires_at
            FROM cache
        """)[0]

        return {
            "count": row[0] or 0,
            "inline_count": row[1] or 0,
            "blob_count": row[2] or 0,
            "inline_bytes": row[3] or 0,
            "oldest_expires_at": row[4] or 0,
            "newest_expires_at": row[5] or 0,
        }

    def vacuum(self) -> None:
        """
        Reclaim space and optimize database.

        Should be called periodically after large purges.
        """
        with self._lock:
            self._conn.execute("VACUUM")

    def close(self) -> None:
        """Close the write connection and every thread's read connection."""
        with self._readers_lock:
            self._closed = True
            readers, self._readers = self._readers, []
        for conn in readers:
            conn.close()
        with self._lock:
            self._conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
