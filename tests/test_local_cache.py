"""Tests for the quota-bounded local cache."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from docshelf.errors import QuotaExceededError
from docshelf.models import DocumentFile, DocumentMetadata
from docshelf.storage.local_cache import LIBRARY_KEY, LocalCache, doc_key, is_quota_error


@pytest.fixture
def cache(tmp_path: Path):
    """Create a temporary cache with a small quota."""
    store = LocalCache(tmp_path / "cache.db", quota_bytes=1000)
    yield store
    store.close()


def _doc(doc_id: str = "doc-1", **overrides) -> DocumentFile:
    values = dict(id=doc_id, name=f"{doc_id}.txt", type="text/plain", uploaded_at="2025-01-01T00:00:00.000Z")
    values.update(overrides)
    return DocumentFile(**values)


class TestIsQuotaError:
    """Test the quota error predicate."""

    def test_quota_exceeded(self) -> None:
        assert is_quota_error(QuotaExceededError("full")) is True

    def test_sqlite_full(self) -> None:
        assert is_quota_error(sqlite3.OperationalError("database or disk is full")) is True

    def test_other_errors(self) -> None:
        assert is_quota_error(sqlite3.OperationalError("no such table: entries")) is False
        assert is_quota_error(ValueError("quota")) is False


class TestLocalCache:
    """Test key/value operations."""

    def test_init_creates_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "new.db"
        store = LocalCache(db_path)
        assert db_path.exists()
        store.close()

    def test_set_get_remove(self, cache: LocalCache) -> None:
        cache.set("a", "value")

        assert cache.get("a") == "value"
        assert cache.usage() == len("a") + len("value")
        assert cache.remove("a") is True
        assert cache.get("a") is None
        assert cache.remove("a") is False

    def test_quota_exceeded(self, cache: LocalCache) -> None:
        with pytest.raises(QuotaExceededError):
            cache.set("big", "x" * 1000)
        assert cache.get("big") is None

    def test_failed_overwrite_keeps_previous_value(self, cache: LocalCache) -> None:
        """A failed write never leaves a half-written entry."""
        cache.set("key", "small")
        cache.set("other", "y" * 500)

        with pytest.raises(QuotaExceededError):
            cache.set("key", "z" * 600)

        assert cache.get("key") == "small"

    def test_overwrite_does_not_count_old_value(self, cache: LocalCache) -> None:
        cache.set("key", "x" * 900)
        cache.set("key", "y" * 900)
        assert cache.get("key") == "y" * 900

    def test_keys(self, cache: LocalCache) -> None:
        cache.set("b", "1")
        cache.set("a", "2")
        assert cache.keys() == ["a", "b"]


class TestDocuments:
    """Test document helpers."""

    def test_store_and_load_document(self, cache: LocalCache) -> None:
        doc = _doc(text_content="hello", author="Ann")

        cache.store_document(doc)

        assert cache.load_document("doc-1") == doc
        stored = json.loads(cache.get(doc_key("doc-1")))
        assert stored["textContent"] == "hello"

    def test_load_missing_document(self, cache: LocalCache) -> None:
        assert cache.load_document("missing") is None

    def test_load_corrupt_document(self, cache: LocalCache) -> None:
        cache.set(doc_key("bad"), "{not json")
        assert cache.load_document("bad") is None

    def test_load_incomplete_document(self, cache: LocalCache) -> None:
        cache.set_json(doc_key("partial"), {"id": "partial"})
        assert cache.load_document("partial") is None


class TestLibraryIndex:
    """Test the secondary metadata index."""

    def test_round_trip(self, cache: LocalCache) -> None:
        entries = [_doc("a").metadata(), _doc("b").metadata()]

        cache.write_library(entries)

        assert cache.read_library() == entries

    def test_missing_index(self, cache: LocalCache) -> None:
        assert cache.read_library() == []

    def test_invalid_entries_are_filtered(self, cache: LocalCache) -> None:
        cache.set_json(
            LIBRARY_KEY,
            [
                {"id": "ok", "name": "ok.txt", "type": "text/plain", "uploadedAt": "now"},
                {"id": "no-name", "type": "text/plain", "uploadedAt": "now"},
                {"id": 3, "name": "x", "type": "text/plain", "uploadedAt": "now"},
                "garbage",
            ],
        )

        entries = cache.read_library()

        assert [entry.id for entry in entries] == ["ok"]
        assert isinstance(entries[0], DocumentMetadata)

    def test_non_list_index(self, cache: LocalCache) -> None:
        cache.set_json(LIBRARY_KEY, {"id": "x"})
        assert cache.read_library() == []

    def test_corrupt_index(self, cache: LocalCache) -> None:
        cache.set(LIBRARY_KEY, "[{")
        assert cache.read_library() == []
