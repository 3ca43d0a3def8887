"""
Hybrid disk cache: SQLite index for small values, one file per large value.

Provides:
- DiskCache: set/get/has/delete/purge with TTL and deletion grace period
- AsyncDiskCache: awaitable facade running the same calls in worker threads
- CacheStatus: hit / stale / miss read states
- CacheSettings: construction options
"""

from .cache import AsyncDiskCache, DiskCache
from .config.settings import CacheSettings
from .persist.records import INLINE_LIMIT, CacheStatus

__all__ = [
    "DiskCache",
    "AsyncDiskCache",
    "CacheSettings",
    "CacheStatus",
    "INLINE_LIMIT",
]

__version__ = "0.1.0"
