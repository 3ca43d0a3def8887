"""
Persistence layer for the hybrid cache.

Provides:
- Stable hashing for naming blob files
- Cache directory layout helpers
- Record types (inline value vs blob reference)
- SQLite-backed metadata index
- File-backed blob store
"""

from .hashing import stable_hash, blob_name
from .paths import CachePaths, ensure_dirs, purge_empty_dirs
from .records import (
    INLINE_LIMIT,
    BlobReference,
    CacheRecord,
    CacheStatus,
    InlineValue,
    StoredValue,
)
from .sqlite_store import MetadataIndex
from .blob_store import BlobStore

__all__ = [
    "stable_hash",
    "blob_name",
    "CachePaths",
    "ensure_dirs",
    "purge_empty_dirs",
    "INLINE_LIMIT",
    "BlobReference",
    "CacheRecord",
    "CacheStatus",
    "InlineValue",
    "StoredValue",
    "MetadataIndex",
    "BlobStore",
]
