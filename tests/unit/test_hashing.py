"""
Unit tests for hybrid_cache/persist/hashing.py
"""
import unicodedata

import pytest

from hybrid_cache.persist.hashing import blob_name, is_blob_name, stable_hash


def test_stable_hash_deterministic():
    assert stable_hash("hello world") == stable_hash("hello world")
    assert stable_hash(b"hello") == stable_hash(b"hello")


def test_stable_hash_length_and_alphabet():
    h = stable_hash("anything")
    assert len(h) == 64
    assert all(c in "0123456789abcdef" for c in h)


def test_stable_hash_no_unicode_normalization():
    """NFC and NFD spellings are different keys and hash differently."""
    composed = unicodedata.normalize("NFC", "café")
    decomposed = unicodedata.normalize("NFD", "café")
    assert composed != decomposed
    assert stable_hash(composed) != stable_hash(decomposed)
    assert blob_name(composed) != blob_name(decomposed)


def test_stable_hash_str_matches_utf8_bytes():
    assert stable_hash("café") == stable_hash("café".encode("utf-8"))


def test_stable_hash_rejects_other_types():
    with pytest.raises(TypeError):
        stable_hash(123)


def test_blob_name_depends_on_key_only():
    assert blob_name("key:1") == blob_name("key:1")
    assert blob_name("key:1") != blob_name("key:2")
    assert is_blob_name(blob_name("key:1"))


def test_is_blob_name_rejects_other_files():
    assert not is_blob_name("cache.db")
    assert not is_blob_name("cache.db-wal")
    assert not is_blob_name(".tmp-" + "a" * 59)
    assert not is_blob_name("A" * 64)
