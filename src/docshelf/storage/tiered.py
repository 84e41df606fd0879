"""Two-tier persistence: quota-aware local cache first, shared collection second.

The local tier walks an ordered list of storage strategies. A quota error
moves on to the next, smaller strategy; any other error aborts. The remote
tier is only reached once the local tier has stored some version of the
document, and a remote failure never rolls the local write back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from docshelf.models import DocumentFile, wire_name
from docshelf.storage.local_cache import LocalCache, doc_key, is_quota_error
from docshelf.storage.remote import SERVER_TIMESTAMP, RemoteCollection

LOGGER = logging.getLogger(__name__)

REMOTE_FIELDS = (
    "id",
    "name",
    "type",
    "source",
    "summary",
    "cover_image_data_uri",
    "author",
    "edition",
    "file_url",
    "asset_id",
    "text_content",
)


class Outcome(str, Enum):
    STORED = "stored"
    STORED_DEGRADED = "stored_degraded"
    FAILED = "failed"


class FailureReason(str, Enum):
    QUOTA_EXHAUSTED = "quota_exhausted"
    UNEXPECTED = "unexpected"


@dataclass(slots=True, frozen=True)
class StorageStrategy:
    name: str
    prepare: Callable[[DocumentFile], DocumentFile]
    degraded: bool = False


FULL = StorageStrategy("full", lambda doc: doc)
TEXT_ONLY = StorageStrategy("text-only", DocumentFile.without_binary_payloads, degraded=True)
DEFAULT_STRATEGIES = (FULL, TEXT_ONLY)


@dataclass(slots=True)
class LocalWrite:
    outcome: Outcome
    document: Optional[DocumentFile] = None
    strategy: Optional[str] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None

    @property
    def stored(self) -> bool:
        return self.outcome is not Outcome.FAILED


@dataclass(slots=True)
class RemoteWrite:
    synced: bool
    error: Optional[str] = None


@dataclass(slots=True)
class CommitResult:
    local: Optional[LocalWrite]
    remote: Optional[RemoteWrite] = None

    @property
    def stored(self) -> bool:
        return self.local is not None and self.local.stored

    @property
    def shared(self) -> bool:
        return self.remote is not None and self.remote.synced


def _absent_to_none(value: Any) -> Any:
    return None if value is None or value == "" else value


def to_remote_record(doc: DocumentFile) -> Dict[str, Any]:
    """Shape a document for the remote collection.

    Every optional field is present, holding None when absent. Inline file
    bytes are never shared.
    """
    record = {wire_name(name): _absent_to_none(getattr(doc, name)) for name in REMOTE_FIELDS}
    record["uploadedAt"] = SERVER_TIMESTAMP
    record["createdAt"] = SERVER_TIMESTAMP
    record["updatedAt"] = SERVER_TIMESTAMP
    return record


def to_remote_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    update = {wire_name(name): _absent_to_none(value) for name, value in fields.items()}
    update.pop("fileDataUri", None)
    update["updatedAt"] = SERVER_TIMESTAMP
    return update


class TieredStore:
    """Writes documents through the local cache and then the remote collection."""

    def __init__(
        self,
        cache: LocalCache,
        collection: RemoteCollection,
        *,
        strategies: Sequence[StorageStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        if not strategies:
            raise ValueError("At least one storage strategy is required")
        self.cache = cache
        self.collection = collection
        self.strategies = tuple(strategies)

    # Local tier --------------------------------------------------------

    def write_local(self, doc: DocumentFile, *, initial: bool = False) -> LocalWrite:
        """Store the largest version of ``doc`` that fits in the local cache.

        With ``initial=True`` a failure also clears any entry under the
        document key so nothing can later be mistaken for a saved document.
        """
        result = self._try_strategies(doc)
        if result.stored:
            self._index(result.document)  # type: ignore[arg-type]
        elif initial:
            self._discard(doc.id)
        return result

    def _try_strategies(self, doc: DocumentFile) -> LocalWrite:
        last_error: Optional[BaseException] = None
        for strategy in self.strategies:
            candidate = strategy.prepare(doc)
            try:
                self.cache.store_document(candidate)
            except Exception as exc:
                if not is_quota_error(exc):
                    LOGGER.error("Unexpected storage error for %s: %s", doc.name, exc)
                    return LocalWrite(Outcome.FAILED, reason=FailureReason.UNEXPECTED, error=str(exc))
                LOGGER.warning(
                    "Local cache full while storing %s with strategy '%s'", doc.name, strategy.name
                )
                last_error = exc
                continue

            outcome = Outcome.STORED_DEGRADED if strategy.degraded else Outcome.STORED
            return LocalWrite(outcome, document=candidate, strategy=strategy.name)

        LOGGER.error("Could not store %s locally: every strategy exceeded the quota", doc.name)
        return LocalWrite(
            Outcome.FAILED,
            reason=FailureReason.QUOTA_EXHAUSTED,
            error=str(last_error) if last_error else None,
        )

    def _index(self, doc: DocumentFile) -> None:
        try:
            entries = [entry for entry in self.cache.read_library() if entry.id != doc.id]
            entries.insert(0, doc.metadata())
            self.cache.write_library(entries)
        except Exception as exc:
            LOGGER.warning("Library index not updated for %s: %s", doc.id, exc)

    def _discard(self, doc_id: str) -> None:
        try:
            self.cache.remove(doc_key(doc_id))
        except Exception as exc:
            LOGGER.warning("Could not clear cache entry for %s: %s", doc_id, exc)

    def load_local(self, doc_id: str) -> Optional[DocumentFile]:
        return self.cache.load_document(doc_id)

    def delete_local(self, doc_id: str) -> None:
        self._discard(doc_id)
        try:
            entries = self.cache.read_library()
            remaining = [entry for entry in entries if entry.id != doc_id]
            if len(remaining) != len(entries):
                self.cache.write_library(remaining)
        except Exception as exc:
            LOGGER.warning("Library index not updated after deleting %s: %s", doc_id, exc)

    # Remote tier -------------------------------------------------------

    async def write_remote(self, doc: DocumentFile) -> RemoteWrite:
        try:
            await self.collection.set(doc.id, to_remote_record(doc))
        except Exception as exc:
            LOGGER.error("Saved %s locally but could not share it: %s", doc.name, exc)
            return RemoteWrite(synced=False, error=str(exc))
        return RemoteWrite(synced=True)

    async def _update_remote(self, doc_id: str, fields: Dict[str, Any]) -> RemoteWrite:
        try:
            await self.collection.update(doc_id, to_remote_fields(fields))
        except Exception as exc:
            LOGGER.error("Remote update of %s failed: %s", doc_id, exc)
            return RemoteWrite(synced=False, error=str(exc))
        return RemoteWrite(synced=True)

    # Both tiers --------------------------------------------------------

    async def write(self, doc: DocumentFile) -> CommitResult:
        local = self.write_local(doc, initial=True)
        if not local.stored:
            return CommitResult(local=local)
        remote = await self.write_remote(local.document)  # type: ignore[arg-type]
        return CommitResult(local=local, remote=remote)

    async def update(
        self, doc_id: str, fields: Dict[str, Any], *, allow_degraded: bool = True
    ) -> CommitResult:
        """Apply a field update locally (when cached), then remotely.

        With ``allow_degraded=False`` an update that only fits once binary
        payloads are dropped is rolled back: the cached version is written
        again and the remote tier is left untouched.
        """
        local: Optional[LocalWrite] = None
        cached = self.load_local(doc_id)
        if cached is not None:
            local = self.write_local(replace(cached, **fields))
            if not local.stored:
                return CommitResult(local=local)
            if local.outcome is Outcome.STORED_DEGRADED and not allow_degraded:
                LOGGER.warning(
                    "Update of %s only fits without binary payloads; keeping the cached version", doc_id
                )
                restored = self.write_local(cached)
                if not restored.stored:
                    LOGGER.error("Could not restore cached version of %s: %s", doc_id, restored.error)
                return CommitResult(local=local)
        else:
            LOGGER.debug("Document %s is not cached locally; updating remote only", doc_id)
        remote = await self._update_remote(doc_id, fields)
        return CommitResult(local=local, remote=remote)
