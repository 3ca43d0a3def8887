"""
Hybrid disk cache with TTL expiry and delayed physical deletion.

Small values are kept inline in the SQLite metadata index; values larger than
``INLINE_LIMIT`` are offloaded to one file per key in the blob store. Reads
classify a key as hit (fresh), stale (expired but still present) or miss, which
supports stale-while-revalidate. Stale records are only removed by ``purge``
once they have been expired for longer than the ``tbd`` grace period.

Writes and deletes touch two stores without a shared transaction:
- set: write the blob, then upsert the index row. A crash in between leaves an
  orphan blob, never a row pointing at a missing file.
- delete/purge: remove the index row, then the blob. A crash in between also
  leaves an orphan blob. ``reconcile`` can sweep orphans on request.
"""

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .config.settings import CacheSettings
from .persist.blob_store import BlobStore
from .persist.hashing import blob_name
from .persist.paths import CachePaths, ensure_dirs
from .persist.records import (
    INLINE_LIMIT,
    BlobReference,
    CacheStatus,
    InlineValue,
    StoredValue,
)
from .persist.sqlite_store import MetadataIndex

logger = logging.getLogger(__name__)


class DiskCache:
    """
    Disk-backed key-value cache for bytes.

    Usage:
        >>> cache = DiskCache(path=Path("data/cache"), ttl=60, tbd=300)
        >>> cache.set("page:1", b"<html>...</html>")
        >>> cache.has("page:1")
        <CacheStatus.HIT: 'hit'>
        >>> cache.get("page:1")
        b'<html>...</html>'
        >>> cache.purge()
        0
    """

    def __init__(
        self,
        path: Optional[Path | str] = None,
        ttl: Optional[float] = None,
        tbd: Optional[float] = None,
        *,
        settings: Optional[CacheSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Open a cache directory, creating it and its index if needed.

        Args:
            path: Cache root directory (default: ``<tmpdir>/hdc``)
            ttl: Default seconds until a value goes stale
            tbd: Seconds a stale value is kept before purge may delete it
            settings: Base settings; explicit arguments override its fields
            clock: Wall-clock source in seconds since epoch

        Raises:
            pydantic.ValidationError: If an option is invalid
            OSError: If the directory cannot be created
            sqlite3.Error: If the index cannot be opened
        """
        options = settings.model_dump() if settings is not None else {}
        overrides = {"path": path, "ttl": ttl, "tbd": tbd}
        options.update({k: v for k, v in overrides.items() if v is not None})
        self._settings = CacheSettings(**options)
        self._clock = clock
        self._write_lock = threading.RLock()

        self._paths = CachePaths(root=self._settings.path)
        ensure_dirs(self._paths)

        self._index = MetadataIndex(self._paths.cache_db_path)
        self._blobs = BlobStore(self._paths.root)

        logger.info(
            f"DiskCache opened at {self.path} (ttl={self.ttl}s, tbd={self.tbd}s)"
        )

    @property
    def path(self) -> Path:
        return self._settings.path

    @property
    def ttl(self) -> float:
        return self._settings.ttl

    @property
    def tbd(self) -> float:
        return self._settings.tbd

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def index(self) -> MetadataIndex:
        return self._index

    @property
    def blobs(self) -> BlobStore:
        return self._blobs

    def set(self, key: str, value: bytes, ttl_seconds: Optional[float] = None) -> None:
        """
        Store a value, replacing any previous record for the key.

        Args:
            key: Cache key
            value: Value bytes (bytes, bytearray or memoryview)
            ttl_seconds: Seconds until stale (default: the cache's ttl)

        Raises:
            TypeError: If value is not bytes-like
            OSError: If the blob write fails; the index is left untouched
        """
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"Cache values must be bytes, got {type(value).__name__}")
        data = bytes(value)

        if ttl_seconds is None:
            ttl_seconds = self.ttl
        expires_at = self._clock() + ttl_seconds

        with self._write_lock:
            previous = self._index.lookup_blob_reference(key)

            stored: StoredValue
            if len(data) > INLINE_LIMIT:
                name = blob_name(key)
                # Blob first: the index must never point at an unwritten file
                self._blobs.store(name, data)
                stored = BlobReference(name)
            else:
                stored = InlineValue(data)

            self._index.upsert(key, stored, expires_at)

            if previous is not None and stored != BlobReference(previous):
                self._blobs.delete(previous)

        logger.debug(
            f"Cached {key!r} ({len(data)} bytes, "
            f"{'blob' if isinstance(stored, BlobReference) else 'inline'})"
        )

    def get(self, key: str, default: Optional[bytes] = None) -> Optional[bytes]:
        """
        Get a value, fresh or stale.

        Args:
            key: Cache key
            default: Returned when the key is absent

        Returns:
            Value bytes, or ``default`` on miss

        Raises:
            OSError: If the record still points at a missing or unreadable
                blob file
        """
        stored = self._index.lookup_value(key)
        while isinstance(stored, BlobReference):
            try:
                return self._blobs.load(stored.name)
            except FileNotFoundError:
                # A delete, purge or overwrite may have run since the lookup
                current = self._index.lookup_value(key)
                if current == stored:
                    return self._blobs.load(stored.name)
                stored = current

        if stored is None:
            return default
        return stored.data

    def has(self, key: str) -> CacheStatus:
        """Classify a key as hit, stale or miss. Never mutates the record."""
        expires_at = self._index.lookup_expiry(key)
        if expires_at is None:
            return CacheStatus.MISS
        return CacheStatus.HIT if expires_at > self._clock() else CacheStatus.STALE

    def delete(self, key: str) -> None:
        """
        Remove a key and its blob file, if any. No error if absent.

        Args:
            key: Cache key
        """
        with self._write_lock:
            name = self._index.lookup_blob_reference(key)
            self._index.remove(key)
            if name is not None:
                self._blobs.delete(name)
        logger.debug(f"Deleted {key!r}")

    def purge(self) -> int:
        """
        Physically delete records expired for longer than ``tbd``.

        Uses a single clock reading: every record with
        ``expires_at < now - tbd`` is removed from the index, then its blob
        file is deleted and empty directories under the root are pruned.

        Returns:
            Number of records removed
        """
        deadline = self._clock() - self.tbd

        with self._write_lock:
            rows = self._index.take_expired_before(deadline)
            blobs_removed = 0
            for _key, name in rows:
                if name is not None and self._blobs.delete(name):
                    blobs_removed += 1
            self._blobs.prune_empty_directories()

        if rows:
            logger.info(f"Purged {len(rows)} records ({blobs_removed} blob files) from {self.path}")
        return len(rows)

    def reconcile(self, min_age: Optional[float] = None) -> int:
        """
        Delete blob files that no index record references.

        Orphans come from a crash between the two phases of a write or
        delete. ``purge`` never looks for them; call this explicitly.

        Args:
            min_age: Only delete orphans whose mtime is at least this many
                seconds old (default: the cache's tbd). Protects blobs of a
                ``set`` in another process that has not upserted its row yet.

        Returns:
            Number of orphan files deleted
        """
        if min_age is None:
            min_age = self.tbd

        removed = 0
        with self._write_lock:
            referenced = self._index.blob_references()
            now = time.time()
            for name in list(self._blobs.iter_names()):
                if name in referenced:
                    continue
                try:
                    age = now - self._blobs.mtime(name)
                except FileNotFoundError:
                    continue
                if age < min_age:
                    continue
                if self._blobs.delete(name):
                    removed += 1

        if removed:
            logger.info(f"Reconciled {removed} orphan blob files in {self.path}")
        return removed

    def stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Index stats plus ``blob_files`` and ``blob_bytes`` on disk
        """
        stats = self._index.stats()
        names = list(self._blobs.iter_names())
        blob_bytes = 0
        for name in names:
            try:
                blob_bytes += self._blobs.path_for(name).stat().st_size
            except FileNotFoundError:
                continue
        stats["blob_files"] = len(names)
        stats["blob_bytes"] = blob_bytes
        return stats

    def vacuum(self) -> None:
        """Reclaim index space. Worth running after a large purge."""
        self._index.vacuum()

    def close(self) -> None:
        """Close the metadata index."""
        self._index.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class AsyncDiskCache:
    """
    Non-blocking facade over DiskCache.

    Each call runs the blocking disk/index work in a worker thread via
    ``asyncio.to_thread``. Awaiting calls in sequence keeps them ordered;
    concurrent tasks may interleave.
    """

    def __init__(self, cache: Optional[DiskCache] = None, **options):
        """
        Wrap an existing cache, or open one from ``options``.

        Args:
            cache: DiskCache to wrap
            **options: DiskCache constructor arguments when ``cache`` is None
        """
        if cache is not None and options:
            raise ValueError("Pass either a DiskCache or constructor options, not both")
        self.cache = cache if cache is not None else DiskCache(**options)

    async def set(self, key: str, value: bytes, ttl_seconds: Optional[float] = None) -> None:
        await asyncio.to_thread(self.cache.set, key, value, ttl_seconds)

    async def get(self, key: str, default: Optional[bytes] = None) -> Optional[bytes]:
        return await asyncio.to_thread(self.cache.get, key, default)

    async def has(self, key: str) -> CacheStatus:
        return await asyncio.to_thread(self.cache.has, key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.cache.delete, key)

    async def purge(self) -> int:
        return await asyncio.to_thread(self.cache.purge)

    async def reconcile(self, min_age: Optional[float] = None) -> int:
        return await asyncio.to_thread(self.cache.reconcile, min_age)

    async def close(self) -> None:
        await asyncio.to_thread(self.cache.close)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
