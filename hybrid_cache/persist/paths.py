"""
Path management for a cache directory.

Provides the on-disk layout (index file, blob files) and directory helpers.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachePaths:
    """Centralized paths for a cache root and its derived files."""

    root: Path                 # e.g., /tmp/hdc

    @property
    def cache_db_path(self) -> Path:
        """Path to SQLite metadata index."""
        return self.root / "cache.db"


def ensure_dirs(cp: CachePaths) -> None:
    """
    Create the cache root if it doesn't exist.

    Args:
        cp: CachePaths instance
    """
    cp.root.mkdir(parents=True, exist_ok=True)


def purge_empty_dirs(root: Path) -> int:
    """
    Remove directories left empty under ``root``, deepest first.

    The root itself is kept even when empty.

    Args:
        root: Directory to sweep

    Returns:
        Number of directories removed
    """
    removed = 0
    if not root.is_dir():
        return removed

    for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
        path = Path(dirpath)
        if path == root:
            continue
        try:
            path.rmdir()
            removed += 1
        except OSError:
            # Not empty, or removed concurrently
            continue

    if removed:
        logger.debug(f"Removed {removed} empty directories under {root}")
    return removed
