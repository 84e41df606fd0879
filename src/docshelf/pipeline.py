"""Document lifecycle: ingestion, enrichment, summaries and deletion.

Each operation returns a result object carrying user-facing notices instead
of raising. Only the upload size guard escapes :func:`ingest`, as a
:class:`~docshelf.errors.FileTooLargeError`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from docshelf.enrichment.enricher import DocumentDetails, apply_details
from docshelf.errors import AIServiceError, RecordNotFoundError
from docshelf.ingestion.intake import create_document
from docshelf.ingestion.placeholder import SkipReason, enrichment_skip_reason
from docshelf.models import DocumentFile, DocumentMetadata
from docshelf.services import Services
from docshelf.storage.assets import AssetDeleteStatus, resource_kind_for
from docshelf.storage.tiered import CommitResult, FailureReason, LocalWrite, Outcome
from docshelf.sync.library import Library
from docshelf.sync.reader import record_to_document

LOGGER = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Notice:
    level: NoticeLevel
    title: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"level": self.level.value, "title": self.title, "message": self.message}


@dataclass(slots=True)
class Upload:
    name: str
    data: bytes
    mime_type: Optional[str] = None


@dataclass(slots=True)
class IngestResult:
    document: Optional[DocumentMetadata]
    commit: Optional[CommitResult] = None
    notices: List[Notice] = field(default_factory=list)
    skip_reason: Optional[SkipReason] = None

    @property
    def stored(self) -> bool:
        return self.document is not None

    @property
    def shared(self) -> bool:
        return self.commit is not None and self.commit.shared


@dataclass(slots=True)
class DeleteResult:
    deleted: bool
    missing: bool = False
    asset_status: Optional[AssetDeleteStatus] = None
    orphaned_asset: Optional[str] = None
    notices: List[Notice] = field(default_factory=list)


@dataclass(slots=True)
class SummaryResult:
    summary: Optional[str]
    commit: Optional[CommitResult] = None
    notices: List[Notice] = field(default_factory=list)
    skip_reason: Optional[SkipReason] = None


CompletionCallback = Callable[[IngestResult], None]


def apply_to_library(library: Library) -> CompletionCallback:
    """Completion callback that shows a stored document in ``library``."""

    def _apply(result: IngestResult) -> None:
        if result.document is not None:
            library.upsert(result.document)

    return _apply


# Notices -----------------------------------------------------------------


def _local_failure_notice(name: str, write: LocalWrite) -> Notice:
    if write.reason is FailureReason.QUOTA_EXHAUSTED:
        return Notice(
            NoticeLevel.ERROR,
            "Storage Error: Save Failed",
            f"Could not save {name}. Even its text content is too large for local storage; "
            "it was not added to your library.",
        )
    return Notice(
        NoticeLevel.ERROR,
        "Storage Error: Unexpected Issue",
        f"An unexpected error occurred while saving {name}: {write.error or 'unknown error'}",
    )


def _remote_notice(name: str, commit: CommitResult) -> Notice:
    if commit.shared:
        return Notice(NoticeLevel.INFO, "Document Saved", f"{name} is saved and available to all users.")
    error = commit.remote.error if commit.remote is not None else None
    return Notice(
        NoticeLevel.WARNING,
        "Saved Locally, Not Shared",
        f"{name} was saved on this device but could not be shared: {error or 'unknown error'}",
    )


def _cover_too_large_notice(name: str) -> Notice:
    return Notice(
        NoticeLevel.WARNING,
        "Cover Image Too Large",
        f"The cover image for {name} did not fit in local storage and was discarded.",
    )


def _details_notices(name: str, details: DocumentDetails) -> List[Notice]:
    if details.error:
        return [
            Notice(
                NoticeLevel.WARNING,
                "Detail Extraction Failed",
                f"Could not identify author, source or edition for {name}.",
            )
        ]
    found = [
        f"{label}: {value}"
        for label, value in (("Author", details.author), ("Source", details.source), ("Edition", details.edition))
        if value
    ]
    if not found:
        return []
    return [Notice(NoticeLevel.INFO, "Details Identified", "; ".join(found))]


def _skip_notice(name: str, reason: SkipReason) -> Notice:
    if reason is SkipReason.PLACEHOLDER:
        message = f"{name} has no extractable text, so details and a cover were not generated."
    else:
        message = f"The text of {name} is too short for details or a cover image."
    return Notice(NoticeLevel.INFO, "AI Processing Skipped", message)


# Ingestion ---------------------------------------------------------------


async def _upload_asset(doc: DocumentFile, services: Services, notices: List[Notice]) -> DocumentFile:
    if doc.original_bytes is None:
        return doc
    if services.assets is None:
        LOGGER.debug("Blob storage disabled; keeping %s inline", doc.name)
        return doc
    try:
        asset = await services.assets.upload(doc.original_bytes, doc.name, doc.type, doc.id)
    except Exception as exc:
        LOGGER.error("Upload of %s to blob storage failed: %s", doc.name, exc)
        notices.append(
            Notice(
                NoticeLevel.WARNING,
                "Cloud Upload Failed",
                f"{doc.name} could not be uploaded; the file is kept inline instead.",
            )
        )
        return doc
    return doc.attach_asset(asset.remote_url, asset.asset_handle)


async def _enrich_new(
    doc: DocumentFile, local: LocalWrite, services: Services, notices: List[Notice]
) -> tuple[DocumentFile, LocalWrite]:
    store = services.store
    enricher = services.enricher

    details = await enricher.extract_details(doc.text_content)
    notices.extend(_details_notices(doc.name, details))
    if not details.empty:
        write = store.write_local(apply_details(doc, details))
        if write.stored:
            doc, local = write.document, write  # type: ignore[assignment]
        else:
            notices.append(_local_failure_notice(doc.name, write))

    cover = await enricher.generate_cover(doc.text_content)
    if cover is None:
        notices.append(
            Notice(NoticeLevel.WARNING, "Cover Image Failed", f"No cover image could be generated for {doc.name}.")
        )
        return doc, local

    write = store.write_local(replace(doc, cover_image_data_uri=cover))
    if write.outcome is Outcome.STORED:
        notices.append(Notice(NoticeLevel.INFO, "Cover Image Generated", f"A cover image was added to {doc.name}."))
        return write.document, write  # type: ignore[return-value]

    if write.outcome is Outcome.STORED_DEGRADED:
        # The degraded copy lost the inline file as well; the pre-cover version fit before.
        restored = store.write_local(doc)
        if restored.outcome is Outcome.STORED:
            doc, local = restored.document, restored  # type: ignore[assignment]
        else:
            doc, local = write.document, write  # type: ignore[assignment]
        notices.append(_cover_too_large_notice(doc.name))
        return doc, local

    notices.append(_local_failure_notice(doc.name, write))
    return doc, local


async def ingest(
    upload: Upload,
    services: Services,
    on_complete: CompletionCallback | None = None,
) -> IngestResult:
    """Take one uploaded file through extraction, storage, enrichment and sharing."""
    notices: List[Notice] = []
    doc = create_document(
        upload.data, upload.name, upload.mime_type, max_bytes=services.config.max_upload_bytes
    )
    doc = await _upload_asset(doc, services, notices)

    local = services.store.write_local(doc, initial=True)
    if not local.stored:
        notices.append(_local_failure_notice(doc.name, local))
        result = IngestResult(document=None, commit=CommitResult(local=local), notices=notices)
        if on_complete is not None:
            on_complete(result)
        return result

    if local.outcome is Outcome.STORED_DEGRADED:
        notices.append(
            Notice(
                NoticeLevel.WARNING,
                "Document Saved (Text Content Only)",
                f"{doc.name} was too large to keep in full; only its text content was saved locally.",
            )
        )
    stored: DocumentFile = local.document  # type: ignore[assignment]

    skip = enrichment_skip_reason(stored.text_content, stored.name, stored.type)
    if skip is not None:
        notices.append(_skip_notice(stored.name, skip))
    elif services.enricher.enabled:
        stored, local = await _enrich_new(stored, local, services, notices)

    remote = await services.store.write_remote(stored)
    commit = CommitResult(local=local, remote=remote)
    notices.append(_remote_notice(stored.name, commit))

    result = IngestResult(document=stored.metadata(), commit=commit, notices=notices, skip_reason=skip)
    if on_complete is not None:
        on_complete(result)
    return result


async def ingest_many(
    uploads: Sequence[Upload],
    services: Services,
    on_complete: CompletionCallback | None = None,
) -> List[IngestResult | BaseException]:
    """Ingest several files concurrently; a failing file does not stop the others."""
    return list(
        await asyncio.gather(
            *(ingest(upload, services, on_complete) for upload in uploads),
            return_exceptions=True,
        )
    )


# Existing documents -------------------------------------------------------


async def _load_document(doc_id: str, services: Services) -> Optional[DocumentFile]:
    cached = services.store.load_local(doc_id)
    if cached is not None:
        return cached
    record = await services.collection.get(doc_id)
    return record_to_document(record) if record is not None else None


def _update_notices(name: str, what: str, commit: CommitResult) -> List[Notice]:
    if commit.local is not None and not commit.local.stored:
        return [_local_failure_notice(name, commit.local)]
    if not commit.shared:
        error = commit.remote.error if commit.remote is not None else None
        return [
            Notice(
                NoticeLevel.WARNING,
                "Cloud Sync Error",
                f"The {what} for {name} was saved locally but not shared: {error or 'unknown error'}",
            )
        ]
    return []


def _refresh_library(library: Library | None, doc_id: str, fields: Dict[str, Any]) -> None:
    if library is None:
        return
    existing = library.get(doc_id)
    if existing is not None:
        library.upsert(replace(existing, **fields))


async def summarize_document(
    doc_id: str, services: Services, library: Library | None = None
) -> SummaryResult:
    """Summarize a stored document and persist the summary on both tiers."""
    doc = await _load_document(doc_id, services)
    if doc is None:
        raise RecordNotFoundError(doc_id)

    skip = enrichment_skip_reason(doc.text_content, doc.name, doc.type)
    if skip is not None:
        notice = Notice(
            NoticeLevel.WARNING,
            "Summary Unavailable",
            f"{doc.name} does not have enough extractable text to summarize.",
        )
        return SummaryResult(summary=None, notices=[notice], skip_reason=skip)

    try:
        summary = await services.summarizer.summarize(doc.text_content)
    except AIServiceError as exc:
        LOGGER.error("Summarization of %s failed: %s", doc_id, exc)
        notice = Notice(NoticeLevel.ERROR, "Summarization Failed", str(exc))
        return SummaryResult(summary=None, notices=[notice])

    fields = {"summary": summary}
    commit = await services.store.update(doc_id, fields)
    notices = _update_notices(doc.name, "summary", commit)
    if commit.local is None or commit.local.stored:
        _refresh_library(library, doc_id, fields)
    return SummaryResult(summary=summary, commit=commit, notices=notices)


async def enrich_document(
    doc_id: str, services: Services, library: Library | None = None
) -> IngestResult:
    """Re-run detail extraction and cover generation for a stored document."""
    doc = await _load_document(doc_id, services)
    if doc is None:
        raise RecordNotFoundError(doc_id)

    skip = enrichment_skip_reason(doc.text_content, doc.name, doc.type)
    if skip is not None:
        return IngestResult(document=doc.metadata(), notices=[_skip_notice(doc.name, skip)], skip_reason=skip)
    if not services.enricher.enabled:
        notice = Notice(NoticeLevel.WARNING, "AI Not Configured", "Set an AI API key to enable enrichment.")
        return IngestResult(document=doc.metadata(), notices=[notice])

    notices: List[Notice] = []
    commit: Optional[CommitResult] = None

    details = await services.enricher.extract_details(doc.text_content)
    notices.extend(_details_notices(doc.name, details))
    if not details.empty:
        enriched = apply_details(doc, details)
        fields = {"author": enriched.author, "source": enriched.source, "edition": enriched.edition}
        commit = await services.store.update(doc_id, fields)
        notices.extend(_update_notices(doc.name, "details", commit))
        doc = replace(doc, **fields)
        _refresh_library(library, doc_id, fields)

    cover = await services.enricher.generate_cover(doc.text_content)
    if cover is None:
        notices.append(
            Notice(NoticeLevel.WARNING, "Cover Image Failed", f"No cover image could be generated for {doc.name}.")
        )
    else:
        fields = {"cover_image_data_uri": cover}
        commit = await services.store.update(doc_id, fields, allow_degraded=False)
        if commit.local is not None and commit.local.outcome is Outcome.STORED_DEGRADED:
            notices.append(_cover_too_large_notice(doc.name))
        else:
            notices.extend(_update_notices(doc.name, "cover image", commit))
            if commit.stored or commit.local is None:
                doc = replace(doc, **fields)
                _refresh_library(library, doc_id, fields)

    return IngestResult(document=doc.metadata(), commit=commit, notices=notices)


async def delete_document(
    doc_id: str, services: Services, library: Library | None = None
) -> DeleteResult:
    """Delete the shared record, then its blob, then the local copy.

    A failure to delete the shared record aborts the whole operation. A blob
    that cannot be deleted is reported as orphaned and never retried.
    """
    meta: Optional[DocumentMetadata] = library.get(doc_id) if library is not None else None
    if meta is None:
        doc = await _load_document(doc_id, services)
        meta = doc.metadata() if doc is not None else None
    name = meta.name if meta is not None else doc_id

    try:
        existed = await services.collection.delete(doc_id)
    except Exception as exc:
        LOGGER.error("Could not delete record %s: %s", doc_id, exc)
        notice = Notice(NoticeLevel.ERROR, "Deletion Failed", f"Could not delete {name}: {exc}")
        return DeleteResult(deleted=False, notices=[notice])
    if not existed and meta is None:
        notice = Notice(NoticeLevel.ERROR, "Document Not Found", f"No document with id {doc_id} exists.")
        return DeleteResult(deleted=False, missing=True, notices=[notice])

    notices: List[Notice] = []
    asset_status: Optional[AssetDeleteStatus] = None
    orphaned: Optional[str] = None

    if meta is not None and meta.file_url and meta.asset_id:
        if services.assets is None:
            asset_status = AssetDeleteStatus.FAILED
        else:
            kind = resource_kind_for(meta.type, meta.file_url, meta.asset_id)
            try:
                asset_status = await services.assets.delete(meta.asset_id, kind)
            except ValueError as exc:
                LOGGER.error("Invalid asset deletion request for %s: %s", doc_id, exc)
                asset_status = AssetDeleteStatus.FAILED
        if not asset_status.ok:
            orphaned = meta.asset_id
            LOGGER.warning("Asset %s of deleted document %s is orphaned", meta.asset_id, doc_id)
            notices.append(
                Notice(
                    NoticeLevel.WARNING,
                    "Cloud File Not Deleted",
                    f"{name} was deleted, but its stored file could not be removed.",
                )
            )

    services.store.delete_local(doc_id)
    if library is not None:
        library.remove(doc_id)
    notices.append(Notice(NoticeLevel.INFO, "Document Deleted", f"{name} has been removed from the library."))
    return DeleteResult(deleted=True, asset_status=asset_status, orphaned_asset=orphaned, notices=notices)
