"""
Shared fixtures for hybrid cache unit tests.
"""
import pytest
from pathlib import Path

from hybrid_cache.cache import DiskCache
from hybrid_cache.persist.blob_store import BlobStore
from hybrid_cache.persist.sqlite_store import MetadataIndex


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Controllable clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    """Cache root inside the test's temp directory."""
    return tmp_path / "hdc"


@pytest.fixture
def cache(cache_dir, clock):
    """DiskCache driven by the fake clock (ttl=60s, tbd=30s)."""
    store = DiskCache(path=cache_dir, ttl=60, tbd=30, clock=clock)
    yield store
    store.close()


@pytest.fixture
def index(tmp_path):
    """Create a temporary MetadataIndex instance."""
    db_path = tmp_path / "cache.db"
    store = MetadataIndex(db_path)
    yield store
    store.close()


@pytest.fixture
def blobs(tmp_path):
    """Create a temporary BlobStore instance."""
    return BlobStore(tmp_path / "blobs")


@pytest.fixture
def large_value() -> bytes:
    """Value just over the inline limit."""
    return b"A" * 20000


@pytest.fixture
def small_value() -> bytes:
    return b"small value"
