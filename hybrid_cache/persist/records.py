"""
Cache record types.

A record stores its value either inline in the index or as a reference to
a blob file, never both. The choice is made at write time by size.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


# Values strictly larger than this are offloaded to the blob store
INLINE_LIMIT = 10 * 1024


class CacheStatus(str, Enum):
    """Read state of a key."""

    HIT = "hit"
    STALE = "stale"
    MISS = "miss"


@dataclass(frozen=True)
class InlineValue:
    """Value stored directly in the index row."""

    data: bytes


@dataclass(frozen=True)
class BlobReference:
    """Name of a blob file holding the value."""

    name: str


StoredValue = Union[InlineValue, BlobReference]


@dataclass(frozen=True)
class CacheRecord:
    """One row of the metadata index."""

    key: str
    value: StoredValue
    expires_at: float           # seconds since epoch


def to_columns(value: StoredValue) -> tuple[bytes | None, str | None]:
    """Split a stored value into ``(inline_value, blob_reference)`` columns."""
    if isinstance(value, InlineValue):
        return value.data, None
    if isinstance(value, BlobReference):
        return None, value.name
    raise TypeError(f"Not a stored value: {value!r}")


def from_columns(inline_value: bytes | None, blob_reference: str | None) -> StoredValue:
    """Rebuild a stored value from its index columns."""
    if blob_reference is not None:
        return BlobReference(blob_reference)
    if inline_value is None:
        raise ValueError("Index row has neither inline value nor blob reference")
    return InlineValue(bytes(inline_value))
