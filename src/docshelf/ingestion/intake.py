"""Intake: turn an uploaded file into its initial DocumentFile record."""

from __future__ import annotations

import base64
import logging
import mimetypes
import uuid
from datetime import datetime, timezone

from docshelf.config import MAX_UPLOAD_BYTES
from docshelf.errors import FileTooLargeError
from docshelf.ingestion.extractor import extract_text
from docshelf.models import DEFAULT_SOURCE, DocumentFile

LOGGER = logging.getLogger(__name__)

FALLBACK_TYPE = "application/octet-stream"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return to_iso(datetime.now(timezone.utc))


def to_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_type(name: str, mime_type: str | None) -> str:
    if mime_type:
        return mime_type
    guessed, _ = mimetypes.guess_type(name)
    return guessed or FALLBACK_TYPE


def encode_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type or FALLBACK_TYPE};base64,{base64.b64encode(data).decode('ascii')}"


def check_size(name: str, size: int, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
    if size > max_bytes:
        raise FileTooLargeError(name, size, max_bytes)


def create_document(
    data: bytes,
    name: str,
    mime_type: str | None = None,
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> DocumentFile:
    """Create a fresh DocumentFile for an uploaded file.

    The size ceiling is checked before any extraction work. The original
    bytes are kept (inline data URI and ``original_bytes``) whatever the
    extraction outcome.
    """
    check_size(name, len(data), max_bytes)

    doc_type = resolve_type(name, mime_type)
    text = extract_text(data, name, doc_type)
    LOGGER.debug("Extracted %d characters from %s", len(text), name)

    return DocumentFile(
        id=str(uuid.uuid4()),
        name=name,
        type=doc_type,
        uploaded_at=utc_now_iso(),
        source=DEFAULT_SOURCE,
        text_content=text,
        file_data_uri=encode_data_uri(data, doc_type),
        original_bytes=data,
    )
