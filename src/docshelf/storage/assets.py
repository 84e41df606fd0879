"""Remote blob storage for original files, backed by an S3-compatible bucket."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote, urlsplit

import boto3
from botocore.exceptions import BotoCoreError, ClientError

LOGGER = logging.getLogger(__name__)

RESOURCE_KINDS = ("image", "video", "raw")
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class AssetDeleteStatus(str, Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is not AssetDeleteStatus.FAILED


@dataclass(slots=True, frozen=True)
class UploadedAsset:
    remote_url: str
    asset_handle: str
    resource_kind: str


def resource_kind_for(
    mime_type: str, file_url: Optional[str] = None, asset_handle: Optional[str] = None
) -> str:
    """Route a MIME type to a resource kind.

    A stored URL of the form ``<endpoint>/<bucket>/<kind>/<handle>`` wins when
    the segment right before the handle names a known kind.
    """
    if file_url and asset_handle:
        path = urlsplit(file_url).path
        suffix = "/" + quote(asset_handle)
        if path.endswith(suffix):
            kind = path[: -len(suffix)].rsplit("/", 1)[-1]
            if kind in RESOURCE_KINDS:
                return kind
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    return "raw"


def object_key(resource_kind: str, asset_handle: str) -> str:
    return f"{resource_kind}/{asset_handle}"


def create_s3_client(region: str, endpoint_url: Optional[str] = None) -> Any:
    kwargs = {"region_name": region}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    return boto3.client("s3", **kwargs)


class AssetLifecycle:
    """Uploads and deletes the blob that holds a document's original bytes."""

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def _url_for(self, key: str) -> str:
        endpoint = getattr(self.client.meta, "endpoint_url", "") or ""
        return f"{endpoint.rstrip('/')}/{self.bucket}/{quote(key)}"

    def _put(self, key: str, data: bytes, mime_type: str) -> None:
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=mime_type)

    async def upload(self, data: bytes, name: str, mime_type: str, doc_id: str) -> UploadedAsset:
        """Store ``data``; raises on failure so the caller can fall back to inline bytes."""
        kind = resource_kind_for(mime_type)
        handle = f"{doc_id}/{name}"
        key = object_key(kind, handle)
        await asyncio.to_thread(self._put, key, data, mime_type)
        LOGGER.info("Uploaded %s to s3://%s/%s", name, self.bucket, key)
        return UploadedAsset(remote_url=self._url_for(key), asset_handle=handle, resource_kind=kind)

    def _delete(self, key: str) -> AssetDeleteStatus:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                LOGGER.warning("Asset %s not found for deletion; it may already be gone", key)
                return AssetDeleteStatus.NOT_FOUND
            raise
        self.client.delete_object(Bucket=self.bucket, Key=key)
        return AssetDeleteStatus.DELETED

    async def delete(self, asset_handle: str, resource_kind: str = "raw") -> AssetDeleteStatus:
        if resource_kind not in RESOURCE_KINDS:
            raise ValueError(
                f"Invalid resource kind: {resource_kind}. Must be one of {', '.join(RESOURCE_KINDS)}"
            )
        if not asset_handle:
            raise ValueError("Missing asset handle for deletion")

        key = object_key(resource_kind, asset_handle)
        try:
            return await asyncio.to_thread(self._delete, key)
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error("Failed to delete asset %s: %s", key, exc)
            return AssetDeleteStatus.FAILED
