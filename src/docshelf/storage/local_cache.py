"""Quota-bounded SQLite key/value cache holding the local copy of documents."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional

from docshelf.config import DEFAULT_CACHE_QUOTA
from docshelf.errors import QuotaExceededError
from docshelf.models import REQUIRED_METADATA_FIELDS, DocumentFile, DocumentMetadata

LOGGER = logging.getLogger(__name__)

DOC_KEY_PREFIX = "doc:"
LIBRARY_KEY = "library"

_FULL_MESSAGES = ("database or disk is full", "quota")


def doc_key(doc_id: str) -> str:
    return f"{DOC_KEY_PREFIX}{doc_id}"


def is_quota_error(exc: BaseException) -> bool:
    """Single predicate deciding whether a storage failure means "out of space"."""
    if isinstance(exc, QuotaExceededError):
        return True
    if isinstance(exc, sqlite3.DatabaseError):
        message = str(exc).lower()
        return any(marker in message for marker in _FULL_MESSAGES)
    return False


class LocalCache:
    """Persistence layer mirroring the browser-style keyed cache.

    Sizes are counted as ``len(key) + len(value)`` in characters, and a write
    that would push the total above ``quota_bytes`` raises
    :class:`QuotaExceededError`. Writes are transactional: a failed ``set``
    leaves the previous value untouched.
    """

    def __init__(self, db_path: Path | str, *, quota_bytes: int = DEFAULT_CACHE_QUOTA) -> None:
        self.db_path = Path(db_path)
        self.quota_bytes = quota_bytes
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

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
                CREATE TABLE IF NOT EXISTS entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

    def usage(self) -> int:
        row = self._conn.execute("SELECT COALESCE(SUM(size), 0) AS total FROM entries").fetchone()
        return int(row["total"])

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM entries WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        size = len(key) + len(value)
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(size), 0) AS total FROM entries WHERE key != ?", (key,)
            ).fetchone()
            if int(row["total"]) + size > self.quota_bytes:
                raise QuotaExceededError(
                    f"Setting '{key}' ({size} bytes) exceeds the {self.quota_bytes} byte quota"
                )
            conn.execute(
                """
                INSERT INTO entries(key, value, size) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    size = excluded.size,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value, size),
            )

    def remove(self, key: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM entries WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def keys(self) -> List[str]:
        return [row["key"] for row in self._conn.execute("SELECT key FROM entries ORDER BY key")]

    # Typed helpers -----------------------------------------------------

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))

    def load_document(self, doc_id: str) -> Optional[DocumentFile]:
        try:
            data = self.get_json(doc_key(doc_id))
        except ValueError as exc:
            LOGGER.warning("Cached document %s is not valid JSON: %s", doc_id, exc)
            return None
        if not isinstance(data, dict):
            return None
        try:
            return DocumentFile.from_dict(data)
        except TypeError as exc:
            LOGGER.warning("Cached document %s is incomplete: %s", doc_id, exc)
            return None

    def store_document(self, doc: DocumentFile) -> None:
        self.set_json(doc_key(doc.id), doc.to_dict())

    def read_library(self) -> List[DocumentMetadata]:
        """Read the secondary metadata index, dropping anything malformed."""
        try:
            parsed = self.get_json(LIBRARY_KEY)
        except ValueError as exc:
            LOGGER.error("Library index is not valid JSON, treating it as empty: %s", exc)
            return []
        if parsed is None:
            return []
        if not isinstance(parsed, list):
            LOGGER.warning("Library index is not a list, treating it as empty")
            return []

        valid = [
            item
            for item in parsed
            if isinstance(item, dict)
            and all(isinstance(item.get(name), str) for name in REQUIRED_METADATA_FIELDS)
        ]
        if len(valid) != len(parsed):
            LOGGER.warning(
                "Filtered %d invalid entries out of the library index", len(parsed) - len(valid)
            )
        return [DocumentMetadata.from_dict(item) for item in valid]

    def write_library(self, entries: List[DocumentMetadata]) -> None:
        self.set_json(LIBRARY_KEY, [entry.to_dict() for entry in entries])
