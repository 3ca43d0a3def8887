"""
File-backed blob store for oversized cache values.

Each value lives in its own file directly under the cache root, named by
a hash of its cache key (see ``hashing.blob_name``).
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator

from .hashing import is_blob_name
from .paths import purge_empty_dirs

logger = logging.getLogger(__name__)


class BlobStore:
    """
    Stateless reader/writer of value files under a root directory.

    Writes go through a temp file and ``os.replace`` so a reader never sees
    a partially written blob.
    """

    def __init__(self, root: Path):
        """
        Initialize blob store at given directory.

        Args:
            root: Cache root directory (created if missing)
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        """Path of the blob file ``name``."""
        return self.root / name

    def store(self, name: str, data: bytes) -> None:
        """
        Write a blob, overwriting any existing file.

        The data is fsynced before the file is moved into place. Errors
        propagate to the caller.

        Args:
            name: Blob file name
            data: Value bytes
        """
        path = self.path_for(name)
        fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=str(self.root))
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)
        logger.debug(f"Stored blob {name[:8]}... ({len(data)} bytes)")

    def load(self, name: str) -> bytes:
        """
        Read the full contents of a blob.

        Raises:
            FileNotFoundError: If the blob does not exist
        """
        return self.path_for(name).read_bytes()

    def delete(self, name: str) -> bool:
        """
        Best-effort removal of a blob.

        Returns:
            True if a file was removed, False if it was already gone
        """
        try:
            self.path_for(name).unlink()
        except FileNotFoundError:
            logger.debug(f"Blob {name[:8]}... already gone")
            return False
        return True

    def prune_empty_directories(self) -> int:
        """Remove empty directories under the root. Returns count removed."""
        return purge_empty_dirs(self.root)

    def iter_names(self) -> Iterator[str]:
        """Yield names of blob files under the root."""
        with os.scandir(self.root) as entries:
            for entry in entries:
                if entry.is_file() and is_blob_name(entry.name):
                    yield entry.name

    def mtime(self, name: str) -> float:
        return self.path_for(name).stat().st_mtime
