"""Remote document collection ("articles") shared by every viewer."""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from docshelf.errors import RecordNotFoundError

LOGGER = logging.getLogger(__name__)

COLLECTION_NAME = "articles"
_TIMESTAMP_MARKER = "__timestamp__"


class _ServerTimestamp:
    """Sentinel replaced by the collection's clock when a record is written."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(slots=True)
class RemoteRecord:
    id: str
    data: Dict[str, Any]
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class Change:
    kind: ChangeKind
    record: RemoteRecord


ChangeListener = Callable[[Change], None]


class RemoteCollection(ABC):
    """Keyed collection ordered by creation time, newest first."""

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []

    @abstractmethod
    async def set(self, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or fully replace a record."""

    @abstractmethod
    async def update(self, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge fields into an existing record; raises RecordNotFoundError."""

    @abstractmethod
    async def get(self, doc_id: str) -> Optional[RemoteRecord]:
        ...

    @abstractmethod
    async def delete(self, doc_id: str) -> bool:
        ...

    @abstractmethod
    async def query(
        self, *, limit: int, start_after: Optional[RemoteRecord] = None
    ) -> List[RemoteRecord]:
        """Return up to ``limit`` records after the cursor, newest first."""

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: Change) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                LOGGER.exception("Change listener failed for %s %s", change.kind.value, change.record.id)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode(data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    encoded: Dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            value = now
        if isinstance(value, datetime):
            value = {_TIMESTAMP_MARKER: value.isoformat(timespec="microseconds")}
        encoded[key] = value
    return encoded


def _decode(raw: str) -> Dict[str, Any]:
    data = json.loads(raw)
    for key, value in data.items():
        if isinstance(value, dict) and set(value) == {_TIMESTAMP_MARKER}:
            data[key] = datetime.fromisoformat(value[_TIMESTAMP_MARKER])
    return data


class SQLiteCollection(RemoteCollection):
    """SQLite-backed collection with server-assigned timestamps."""

    def __init__(self, db_path: Path | str, *, name: str = COLLECTION_NAME) -> None:
        super().__init__()
        self.db_path = Path(db_path)
        self.name = name
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT,
                    PRIMARY KEY (collection, id)
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_records_created
                    ON records(collection, created_at DESC, id DESC)
                """
            )

    def _row_to_record(self, row: sqlite3.Row) -> RemoteRecord:
        data = _decode(row["data"])
        created = data.get("createdAt")
        return RemoteRecord(
            id=row["id"],
            data=data,
            created_at=created if isinstance(created, datetime) else None,
        )

    def _fetch(self, doc_id: str) -> Optional[RemoteRecord]:
        row = self._conn.execute(
            "SELECT id, data FROM records WHERE collection = ? AND id = ?",
            (self.name, doc_id),
        ).fetchone()
        return self._row_to_record(row) if row else None

    def _write(self, doc_id: str, data: Dict[str, Any]) -> RemoteRecord:
        created = data.get("createdAt")
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO records(collection, id, data, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(collection, id) DO UPDATE SET
                    data = excluded.data,
                    created_at = excluded.created_at
                """,
                (
                    self.name,
                    doc_id,
                    json.dumps(data, ensure_ascii=False),
                    created[_TIMESTAMP_MARKER] if isinstance(created, dict) else None,
                ),
            )
        return self._fetch(doc_id)  # type: ignore[return-value]

    async def set(self, doc_id: str, data: Dict[str, Any]) -> None:
        existed = self._fetch(doc_id) is not None
        record = self._write(doc_id, _encode(data, _utcnow()))
        self._notify(Change(ChangeKind.MODIFIED if existed else ChangeKind.ADDED, record))

    async def update(self, doc_id: str, fields: Dict[str, Any]) -> None:
        current = self._fetch(doc_id)
        if current is None:
            raise RecordNotFoundError(doc_id)
        merged = dict(current.data)
        merged.update(fields)
        record = self._write(doc_id, _encode(merged, _utcnow()))
        self._notify(Change(ChangeKind.MODIFIED, record))

    async def get(self, doc_id: str) -> Optional[RemoteRecord]:
        return self._fetch(doc_id)

    async def delete(self, doc_id: str) -> bool:
        current = self._fetch(doc_id)
        if current is None:
            return False
        with self.transaction() as conn:
            conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?", (self.name, doc_id)
            )
        self._notify(Change(ChangeKind.REMOVED, current))
        return True

    async def query(
        self, *, limit: int, start_after: Optional[RemoteRecord] = None
    ) -> List[RemoteRecord]:
        sql = "SELECT id, data FROM records WHERE collection = ?"
        params: List[Any] = [self.name]
        if start_after is not None:
            if start_after.created_at is None:
                sql += " AND created_at IS NULL AND id < ?"
                params.append(start_after.id)
            else:
                cursor_ts = start_after.created_at.isoformat(timespec="microseconds")
                sql += (
                    " AND (created_at < ? OR (created_at = ? AND id < ?) OR created_at IS NULL)"
                )
                params.extend([cursor_ts, cursor_ts, start_after.id])
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_record(row) for row in rows]
