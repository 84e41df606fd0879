"""Tests for the SQLite-backed remote collection."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import List

import pytest

from docshelf.errors import RecordNotFoundError
from docshelf.storage.remote import SERVER_TIMESTAMP, Change, ChangeKind, SQLiteCollection


@pytest.fixture
def collection(tmp_path: Path):
    store = SQLiteCollection(tmp_path / "articles.db")
    yield store
    store.close()


class TestWrites:
    """Test set/update/get/delete."""

    def test_set_resolves_server_timestamps(self, collection: SQLiteCollection) -> None:
        asyncio.run(collection.set("a", {"name": "a.txt", "createdAt": SERVER_TIMESTAMP, "fileUrl": None}))

        record = asyncio.run(collection.get("a"))

        assert record is not None
        assert isinstance(record.data["createdAt"], datetime)
        assert record.created_at == record.data["createdAt"]
        assert record.data["fileUrl"] is None
        assert record.data["name"] == "a.txt"

    def test_get_missing(self, collection: SQLiteCollection) -> None:
        assert asyncio.run(collection.get("missing")) is None

    def test_update_merges_fields(self, collection: SQLiteCollection) -> None:
        asyncio.run(collection.set("a", {"name": "a.txt", "summary": None}))

        asyncio.run(collection.update("a", {"summary": "Short."}))

        record = asyncio.run(collection.get("a"))
        assert record.data == {"name": "a.txt", "summary": "Short."}

    def test_update_missing_record(self, collection: SQLiteCollection) -> None:
        with pytest.raises(RecordNotFoundError):
            asyncio.run(collection.update("missing", {"summary": "x"}))

    def test_delete(self, collection: SQLiteCollection) -> None:
        asyncio.run(collection.set("a", {"name": "a.txt"}))

        assert asyncio.run(collection.delete("a")) is True
        assert asyncio.run(collection.delete("a")) is False
        assert asyncio.run(collection.get("a")) is None

    def test_collections_are_isolated(self, tmp_path: Path) -> None:
        articles = SQLiteCollection(tmp_path / "shared.db")
        other = SQLiteCollection(tmp_path / "shared.db", name="other")

        asyncio.run(articles.set("a", {"name": "a.txt"}))

        assert asyncio.run(other.get("a")) is None
        articles.close()
        other.close()


class TestSubscriptions:
    """Test change notifications."""

    def test_changes_are_delivered(self, collection: SQLiteCollection) -> None:
        changes: List[Change] = []
        collection.subscribe(changes.append)

        asyncio.run(collection.set("a", {"name": "a.txt"}))
        asyncio.run(collection.set("a", {"name": "renamed.txt"}))
        asyncio.run(collection.update("a", {"summary": "s"}))
        asyncio.run(collection.delete("a"))

        assert [change.kind for change in changes] == [
            ChangeKind.ADDED,
            ChangeKind.MODIFIED,
            ChangeKind.MODIFIED,
            ChangeKind.REMOVED,
        ]
        assert changes[1].record.data["name"] == "renamed.txt"

    def test_unsubscribe(self, collection: SQLiteCollection) -> None:
        changes: List[Change] = []
        unsubscribe = collection.subscribe(changes.append)
        unsubscribe()

        asyncio.run(collection.set("a", {"name": "a.txt"}))

        assert changes == []

    def test_failing_listener_does_not_break_writes(self, collection: SQLiteCollection) -> None:
        def broken(change: Change) -> None:
            raise RuntimeError("listener bug")

        received: List[Change] = []
        collection.subscribe(broken)
        collection.subscribe(received.append)

        asyncio.run(collection.set("a", {"name": "a.txt"}))

        assert len(received) == 1


class TestQuery:
    """Test ordering and cursor pagination."""

    def test_newest_first(self, collection: SQLiteCollection) -> None:
        for doc_id in ("a", "b", "c"):
            asyncio.run(collection.set(doc_id, {"name": doc_id, "createdAt": SERVER_TIMESTAMP}))

        records = asyncio.run(collection.query(limit=10))

        assert [record.id for record in records] == ["c", "b", "a"]

    def test_undated_records_last(self, collection: SQLiteCollection) -> None:
        asyncio.run(collection.set("undated", {"name": "u"}))
        asyncio.run(collection.set("dated", {"name": "d", "createdAt": SERVER_TIMESTAMP}))

        records = asyncio.run(collection.query(limit=10))

        assert [record.id for record in records] == ["dated", "undated"]

    def test_cursor_pages_cover_everything_once(self, collection: SQLiteCollection) -> None:
        for index in range(7):
            asyncio.run(collection.set(f"doc-{index}", {"createdAt": SERVER_TIMESTAMP}))
        asyncio.run(collection.set("undated-1", {}))
        asyncio.run(collection.set("undated-2", {}))

        seen: List[str] = []
        cursor = None
        while True:
            page = asyncio.run(collection.query(limit=3, start_after=cursor))
            seen.extend(record.id for record in page)
            if len(page) < 3:
                break
            cursor = page[-1]

        assert len(seen) == 9
        assert len(set(seen)) == 9
        assert seen[-2:] == ["undated-2", "undated-1"]
