"""Paginated, live-updating read path from the remote collection."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from docshelf.config import DEFAULT_PAGE_SIZE
from docshelf.ingestion.intake import to_iso, utc_now_iso
from docshelf.models import DEFAULT_SOURCE, DocumentFile, DocumentMetadata
from docshelf.storage.remote import Change, ChangeKind, RemoteCollection, RemoteRecord
from docshelf.sync.library import Library

LOGGER = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_timestamp(value: Any, doc_id: str = "") -> str:
    """Coerce a stored timestamp to ISO-8601, falling back to the current time."""
    if value is None or value == "":
        return utc_now_iso()
    try:
        if isinstance(value, datetime):
            return to_iso(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return to_iso(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
        if isinstance(value, str):
            return to_iso(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except (ValueError, OverflowError, OSError) as exc:
        LOGGER.warning("Invalid date for document %s, using current date: %s", doc_id, exc)
        return utc_now_iso()

    LOGGER.warning("Invalid date type %s for document %s, using current date", type(value).__name__, doc_id)
    return utc_now_iso()


def _optional(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    return value if value else None


def record_to_metadata(record: RemoteRecord) -> DocumentMetadata:
    data = record.data
    return DocumentMetadata(
        id=record.id,
        name=data.get("name") or "",
        type=data.get("type") or "document",
        uploaded_at=normalize_timestamp(data.get("uploadedAt"), record.id),
        source=data.get("source") or DEFAULT_SOURCE,
        summary=_optional(data, "summary"),
        cover_image_data_uri=_optional(data, "coverImageDataUri"),
        author=_optional(data, "author"),
        edition=_optional(data, "edition"),
        file_url=_optional(data, "fileUrl"),
        asset_id=_optional(data, "assetId"),
    )


def record_to_document(record: RemoteRecord) -> DocumentFile:
    meta = record_to_metadata(record)
    return DocumentFile(
        id=meta.id,
        name=meta.name,
        type=meta.type,
        uploaded_at=meta.uploaded_at,
        source=meta.source,
        summary=meta.summary,
        cover_image_data_uri=meta.cover_image_data_uri,
        author=meta.author,
        edition=meta.edition,
        file_url=meta.file_url,
        asset_id=meta.asset_id,
        text_content=record.data.get("textContent") or "",
    )


def sort_key(record: RemoteRecord) -> Tuple[bool, datetime, str]:
    """Ordering key; larger keys come first (createdAt desc, id desc, undated last)."""
    created = record.created_at
    return (created is not None, created or _EPOCH, record.id)


class SyncReader:
    """Keeps a :class:`Library` in step with the newest pages of the collection."""

    def __init__(
        self,
        collection: RemoteCollection,
        library: Library | None = None,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.collection = collection
        self.library = library if library is not None else Library()
        self.page_size = page_size
        self.has_more = False
        self._records: Dict[str, RemoteRecord] = {}
        self._last: Optional[RemoteRecord] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def documents(self) -> List[DocumentMetadata]:
        return self.library.documents

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> List[DocumentMetadata]:
        """Load the first page and start following changes."""
        records = await self.collection.query(limit=self.page_size)
        self._records = {record.id: record for record in records}
        self.library.replace_all(record_to_metadata(record) for record in records)
        self._last = records[-1] if records else None
        self.has_more = len(records) == self.page_size
        if self._unsubscribe is None:
            self._unsubscribe = self.collection.subscribe(self._on_change)
        return self.library.documents

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def load_more(self) -> List[DocumentMetadata]:
        """Append the next page after the last loaded record."""
        if not self.has_more:
            return []
        records = await self.collection.query(limit=self.page_size, start_after=self._last)
        fresh = [record for record in records if record.id not in self._records]
        for record in fresh:
            self._records[record.id] = record
        page = [record_to_metadata(record) for record in fresh]
        self.library.extend(page)
        if records:
            self._last = records[-1]
        self.has_more = len(records) == self.page_size
        return page

    # Live updates ------------------------------------------------------

    def _in_window(self, record: RemoteRecord) -> bool:
        if not self.has_more or self._last is None:
            return True
        return sort_key(record) > sort_key(self._last)

    def _position_for(self, record: RemoteRecord) -> int:
        key = sort_key(record)
        for index, doc in enumerate(self.library.documents):
            known = self._records.get(doc.id)
            if known is not None and key > sort_key(known):
                return index
        return len(self.library)

    def _on_change(self, change: Change) -> None:
        record = change.record
        if change.kind is ChangeKind.REMOVED:
            self._records.pop(record.id, None)
            self.library.remove(record.id)
            if self._last is not None and self._last.id == record.id:
                remaining = sorted(self._records.values(), key=sort_key)
                self._last = remaining[0] if remaining else None
            return

        metadata = record_to_metadata(record)
        if record.id in self.library:
            self._records[record.id] = record
            self.library.upsert(metadata)
        elif self._in_window(record):
            position = self._position_for(record)
            self._records[record.id] = record
            self.library.insert(position, metadata)
