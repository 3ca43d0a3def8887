"""
Stable hashing utilities for naming offloaded cache values.

Blob files are addressed by a hash of the cache key, never of the value,
so rewriting a key always lands on the same file. Keys are hashed exactly
as stored in the index: two keys that differ only in Unicode normalization
are distinct keys and get distinct files.
"""

import hashlib
import re


BLOB_NAME_RE = re.compile(r"^[0-9a-f]{64}$")


def stable_hash(obj: str | bytes) -> str:
    """
    Compute stable hash of a string or bytes.

    - Strings: UTF-8 encoded as-is
    - Bytes: used directly

    Returns:
        64-character hex string (blake2b)

    Examples:
        >>> stable_hash("hello world") == stable_hash(b"hello world")
        True
    """
    if isinstance(obj, str):
        data = obj.encode("utf-8")
    elif isinstance(obj, bytes):
        data = obj
    else:
        raise TypeError(f"Cannot hash type {type(obj)}: {obj}")

    h = hashlib.blake2b(data, digest_size=32)
    return h.hexdigest()


def blob_name(key: str) -> str:
    """File name for the offloaded value of ``key``."""
    return stable_hash(key)


def is_blob_name(name: str) -> bool:
    """True if ``name`` looks like a file produced by :func:`blob_name`."""
    return bool(BLOB_NAME_RE.match(name))
