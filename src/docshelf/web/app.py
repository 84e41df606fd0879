"""FastAPI application exposing the DocShelf library over HTTP."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from docshelf.config import AppConfig
from docshelf.errors import AIServiceError, FileTooLargeError, RecordNotFoundError
from docshelf.pipeline import Notice, Upload, delete_document, ingest, summarize_document
from docshelf.services import Services, build_services
from docshelf.storage.assets import RESOURCE_KINDS, AssetDeleteStatus
from docshelf.sync.reader import SyncReader, record_to_document

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="DocShelf Web", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_config: AppConfig | None = None
_services: Services | None = None


class SummarizePayload(BaseModel):
    text: str = ""


class DeleteFilePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_handle: Optional[str] = Field(default=None, alias="assetHandle")
    resource_kind: str = Field(default="raw", alias="resourceKind")


def configure(config: AppConfig) -> None:
    """Use ``config`` for the services built on first request."""
    global _config
    _config = config


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(_config or AppConfig.from_env(), Path.cwd())
    return _services


def _notices(notices: List[Notice]) -> List[Dict[str, str]]:
    return [notice.to_dict() for notice in notices]


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    global _services
    if _services is not None:
        await _services.aclose()
        _services = None


@app.post("/documents")
async def upload_document(
    file: UploadFile = File(...), services: Services = Depends(get_services)
) -> dict[str, Any]:
    """Ingest one uploaded file."""
    data = await file.read()
    upload = Upload(name=file.filename or "upload", data=data, mime_type=file.content_type or None)
    try:
        result = await ingest(upload, services)
    except FileTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc

    return {
        "stored": result.stored,
        "shared": result.shared,
        "document": result.document.to_dict() if result.document is not None else None,
        "skip_reason": result.skip_reason.value if result.skip_reason is not None else None,
        "notices": _notices(result.notices),
    }


@app.get("/documents")
async def list_documents(
    pages: int = 1, q: str | None = None, services: Services = Depends(get_services)
) -> dict[str, Any]:
    """List the newest pages of the shared library, optionally filtered."""
    if pages < 1:
        raise HTTPException(status_code=400, detail="pages must be at least 1")

    reader = SyncReader(services.collection, page_size=services.config.page_size)
    await reader.start()
    try:
        for _ in range(pages - 1):
            if not reader.has_more:
                break
            await reader.load_more()
    finally:
        reader.stop()

    documents = reader.library.search(q)
    return {"documents": [doc.to_dict() for doc in documents], "has_more": reader.has_more}


@app.get("/documents/{doc_id}")
async def get_document(doc_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    doc = services.store.load_local(doc_id)
    if doc is None:
        record = await services.collection.get(doc_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Document {doc_id} not found")
        doc = record_to_document(record)
    return {"document": doc.to_dict()}


@app.delete("/documents/{doc_id}")
async def delete_document_by_id(doc_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    """Delete a document, its stored file and its local copy."""
    result = await delete_document(doc_id, services)
    if result.missing:
        raise HTTPException(status_code=404, detail=f"Document {doc_id} not found")
    if not result.deleted:
        raise HTTPException(status_code=502, detail=result.notices[0].message if result.notices else "Delete failed")
    return {
        "status": "ok",
        "deleted_id": doc_id,
        "orphaned_asset": result.orphaned_asset,
        "notices": _notices(result.notices),
    }


@app.post("/documents/{doc_id}/summary")
async def summarize_stored_document(
    doc_id: str, services: Services = Depends(get_services)
) -> dict[str, Any]:
    try:
        result = await summarize_document(doc_id, services)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "summary": result.summary,
        "shared": result.commit is not None and result.commit.shared,
        "notices": _notices(result.notices),
    }


@app.post("/api/summarize")
async def summarize_text(payload: SummarizePayload, services: Services = Depends(get_services)) -> dict[str, str]:
    """Summarize arbitrary text."""
    if not payload.text.strip():
        raise HTTPException(status_code=400, detail="Text is required for summarization.")
    if not services.summarizer.enabled:
        raise HTTPException(status_code=500, detail="AI service is not configured.")
    try:
        summary = await services.summarizer.summarize(payload.text)
    except AIServiceError as exc:
        LOGGER.error("Summarization failed: %s", exc)
        raise HTTPException(status_code=500, detail=f"Failed to generate summary: {exc}") from exc
    return {"summary": summary}


@app.post("/api/delete-file")
async def delete_file(payload: DeleteFilePayload, services: Services = Depends(get_services)) -> dict[str, Any]:
    """Delete a stored file by handle; a file that is already gone counts as deleted."""
    if not payload.asset_handle:
        raise HTTPException(status_code=400, detail="Missing assetHandle for deletion.")
    if payload.resource_kind not in RESOURCE_KINDS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid resourceKind: {payload.resource_kind}. Must be one of {', '.join(RESOURCE_KINDS)}.",
        )
    if services.assets is None:
        raise HTTPException(status_code=500, detail="File storage is not configured.")

    status = await services.assets.delete(payload.asset_handle, payload.resource_kind)
    if status is AssetDeleteStatus.NOT_FOUND:
        return {"success": True, "message": "File not found; it may have been deleted already."}
    if status is AssetDeleteStatus.DELETED:
        return {"success": True, "message": "File deleted."}
    raise HTTPException(status_code=500, detail="Failed to delete file from storage.")
