"""
Unit tests for hybrid_cache/persist/sqlite_store.py

Tests the SQLite metadata index in WAL mode.
"""
import sqlite3
import threading
import time

import pytest

from hybrid_cache.persist.records import BlobReference, CacheRecord, InlineValue
from hybrid_cache.persist.sqlite_store import MetadataIndex


def test_upsert_lookup_remove_roundtrip(index):
    """Basic upsert/lookup/remove operations."""
    index.upsert("k1", InlineValue(b"value"), 100.0)

    assert index.lookup_value("k1") == InlineValue(b"value")
    assert index.lookup_expiry("k1") == 100.0
    assert index.lookup("k1") == CacheRecord("k1", InlineValue(b"value"), 100.0)

    index.remove("k1")

    assert index.lookup_value("k1") is None
    assert index.lookup_expiry("k1") is None
    assert index.lookup("k1") is None


def test_blob_reference_roundtrip(index):
    """Blob references come back as BlobReference, not inline bytes."""
    index.upsert("big", BlobReference("ab" * 32), 50.0)

    assert index.lookup_value("big") == BlobReference("ab" * 32)
    assert index.lookup_blob_reference("big") == "ab" * 32
    assert index.lookup("big").value == BlobReference("ab" * 32)


def test_upsert_switches_storage_mode(index):
    """Upsert replaces value, reference and expiry together."""
    index.upsert("k", BlobReference("f" * 64), 10.0)
    index.upsert("k", InlineValue(b"small"), 20.0)

    assert index.lookup_value("k") == InlineValue(b"small")
    assert index.lookup_blob_reference("k") is None
    assert index.lookup_expiry("k") == 20.0

    index.upsert("k", BlobReference("e" * 64), 30.0)
    assert index.lookup_value("k") == BlobReference("e" * 64)
    assert index.stats()["count"] == 1


def test_check_constraint_rejects_both_columns(index):
    """A row can never hold both an inline value and a blob reference."""
    with pytest.raises(sqlite3.IntegrityError):
        index._conn.execute(
            "INSERT INTO cache (key, inline_value, blob_reference, expires_at)"
            " VALUES ('bad', x'00', 'name', 1.0)"
        )
    with pytest.raises(sqlite3.IntegrityError):
        index._conn.execute(
            "INSERT INTO cache (key, inline_value, blob_reference, expires_at)"
            " VALUES ('bad', NULL, NULL, 1.0)"
        )


def test_upsert_rejects_non_stored_value(index):
    with pytest.raises(TypeError):
        index.upsert("k", b"raw bytes", 1.0)


def test_remove_nonexistent_key(index):
    """Removing a nonexistent key should not raise an error."""
    index.remove("nonexistent_key")


def test_scan_and_delete_expired_before(index):
    """Scan and delete use the same strict '<' predicate."""
    index.upsert("old_inline", InlineValue(b"1"), 10.0)
    index.upsert("old_blob", BlobReference("a" * 64), 20.0)
    index.upsert("boundary", InlineValue(b"2"), 30.0)
    index.upsert("fresh", InlineValue(b"3"), 40.0)

    rows = index.scan_expired_before(30.0)
    assert sorted(rows) == [("old_blob", "a" * 64), ("old_inline", None)]

    assert index.delete_expired_before(30.0) == 2
    assert index.lookup("boundary") is not None
    assert index.lookup("fresh") is not None
    assert index.scan_expired_before(30.0) == []


def test_take_expired_before_returns_deleted_rows(index):
    index.upsert("a", InlineValue(b"1"), 1.0)
    index.upsert("b", BlobReference("b" * 64), 2.0)
    index.upsert("c", InlineValue(b"3"), 100.0)

    taken = index.take_expired_before(50.0)

    assert sorted(taken) == [("a", None), ("b", "b" * 64)]
    assert index.take_expired_before(50.0) == []
    assert index.lookup("c") is not None


def test_blob_references(index):
    index.upsert("a", InlineValue(b"1"), 1.0)
    index.upsert("b", BlobReference("b" * 64), 1.0)
    index.upsert("c", BlobReference("c" * 64), 1.0)

    assert index.blob_references() == {"b" * 64, "c" * 64}


def test_stats(index):
    index.upsert("a", InlineValue(b"12345"), 5.0)
    index.upsert("b", BlobReference("b" * 64), 9.0)

    stats = index.stats()

    assert stats == {
        "count": 2,
        "inline_count": 1,
        "blob_count": 1,
        "inline_bytes": 5,
        "oldest_expires_at": 5.0,
        "newest_expires_at": 9.0,
    }


def test_stats_empty(index):
    assert index.stats()["count"] == 0
    assert index.stats()["inline_bytes"] == 0


def test_persistence_after_reopen(tmp_path):
    """Records should persist after closing and reopening the index."""
    db_path = tmp_path / "persist_test.db"

    index1 = MetadataIndex(db_path)
    index1.upsert("key1", InlineValue(b"value1"), 123.5)
    index1.close()

    with MetadataIndex(db_path) as index2:
        assert index2.lookup_value("key1") == InlineValue(b"value1")
        assert index2.lookup_expiry("key1") == 123.5


def test_wal_mode_enabled(index):
    mode = index._conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode.lower() == "wal"


def test_corrupt_index_raises_on_open(tmp_path):
    """A file that is not a database is fatal at open time."""
    db_path = tmp_path / "cache.db"
    db_path.write_bytes(b"this is definitely not sqlite" * 100)

    with pytest.raises(sqlite3.DatabaseError):
        MetadataIndex(db_path)


def test_empty_inline_value(index):
    """Empty byte values are stored inline and read back."""
    index.upsert("empty", InlineValue(b""), 1.0)
    assert index.lookup_value("empty") == InlineValue(b"")


def test_unicode_keys(index):
    """Should handle Unicode keys correctly."""
    key = "测试_key_🔥"
    index.upsert(key, InlineValue(b"unicode"), 1.0)
    assert index.lookup_value(key) == InlineValue(b"unicode")


def test_parallel_upserts_no_crash(index):
    """Parallel upserts from multiple threads should not crash."""
    num_threads = 10
    writes_per_thread = 20
    errors = []

    def write_task(thread_id):
        try:
            for i in range(writes_per_thread):
                index.upsert(
                    f"thread_{thread_id}_key_{i}",
                    InlineValue(f"value_{i}".encode()),
                    float(i),
                )
                time.sleep(0.001)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=write_task, args=(i,)) for i in range(num_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert index.stats()["count"] == num_threads * writes_per_thread


def test_second_connection_reads_during_writes(tmp_path):
    """A second index on the same file can read while the first writes."""
    db_path = tmp_path / "cache.db"
    writer = MetadataIndex(db_path)
    reader = MetadataIndex(db_path)
    errors = []

    def write():
        try:
            for i in range(50):
                writer.upsert(f"key_{i}", InlineValue(b"x"), float(i))
        except Exception as e:
            errors.append(e)

    def read():
        try:
            for i in range(50):
                reader.lookup_value(f"key_{i}")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=write), threading.Thread(target=read)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert reader.lookup_value("key_49") == InlineValue(b"x")
    writer.close()
    reader.close()


def test_reads_do_not_wait_for_open_write_transaction(index):
    """Lookups from another thread see committed rows while a write is in flight."""
    index.upsert("committed", InlineValue(b"v"), 1.0)
    results = []

    def read():
        results.append(index.lookup_value("committed"))
        results.append(index.lookup_value("pending"))

    with index._lock:
        index._conn.execute("BEGIN IMMEDIATE")
        index._conn.execute(
            "INSERT INTO cache (key, inline_value, blob_reference, expires_at)"
            " VALUES ('pending', x'01', NULL, 1.0)"
        )
        reader = threading.Thread(target=read)
        reader.start()
        reader.join(timeout=5)
        alive = reader.is_alive()
        index._conn.execute("COMMIT")

    assert not alive
    assert results == [InlineValue(b"v"), None]
    assert index.lookup_value("pending") == InlineValue(b"\x01")


def test_closed_index_rejects_reads(tmp_path):
    store = MetadataIndex(tmp_path / "cache.db")
    store.close()

    with pytest.raises(sqlite3.ProgrammingError):
        store.lookup_value("k")
