"""Core docshelf data models."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional

DEFAULT_SOURCE = "File Upload"

# Attribute name -> wire (camelCase) name used by the caches and the remote collection.
_WIRE_NAMES = {
    "uploaded_at": "uploadedAt",
    "cover_image_data_uri": "coverImageDataUri",
    "file_url": "fileUrl",
    "asset_id": "assetId",
    "text_content": "textContent",
    "file_data_uri": "fileDataUri",
}
_ATTR_NAMES = {wire: attr for attr, wire in _WIRE_NAMES.items()}

REQUIRED_METADATA_FIELDS = ("id", "name", "type", "uploadedAt")


def wire_name(attr: str) -> str:
    return _WIRE_NAMES.get(attr, attr)


def attr_name(key: str) -> str:
    return _ATTR_NAMES.get(key, key)


@dataclass(slots=True)
class DocumentMetadata:
    """Lightweight record listed in the library view."""

    id: str
    name: str
    type: str
    uploaded_at: str
    source: str = DEFAULT_SOURCE
    summary: Optional[str] = None
    cover_image_data_uri: Optional[str] = None
    author: Optional[str] = None
    edition: Optional[str] = None
    file_url: Optional[str] = None
    asset_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to wire names, skipping absent optional fields."""
        payload: Dict[str, Any] = {}
        for item in fields(self):
            if item.metadata.get("transient"):
                continue
            value = getattr(self, item.name)
            if value is None:
                continue
            payload[wire_name(item.name)] = value
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentMetadata":
        known = {item.name for item in fields(cls) if item.init and not item.metadata.get("transient")}
        kwargs = {}
        for key, value in data.items():
            attr = attr_name(key)
            if attr in known and value is not None:
                kwargs[attr] = value
        if kwargs.get("source") is None:
            kwargs["source"] = DEFAULT_SOURCE
        return cls(**kwargs)


@dataclass(slots=True)
class DocumentFile(DocumentMetadata):
    """Document metadata plus the extracted text and inline payloads."""

    text_content: str = ""
    file_data_uri: Optional[str] = None
    # Raw upload bytes, never serialized.
    original_bytes: Optional[bytes] = field(
        default=None, repr=False, compare=False, metadata={"transient": True}
    )

    def metadata(self) -> DocumentMetadata:
        return DocumentMetadata(
            id=self.id,
            name=self.name,
            type=self.type,
            uploaded_at=self.uploaded_at,
            source=self.source,
            summary=self.summary,
            cover_image_data_uri=self.cover_image_data_uri,
            author=self.author,
            edition=self.edition,
            file_url=self.file_url,
            asset_id=self.asset_id,
        )

    def attach_asset(self, file_url: str, asset_id: str) -> "DocumentFile":
        """Point the document at its remote blob and drop the inline copy."""
        return replace(self, file_url=file_url, asset_id=asset_id, file_data_uri=None)

    def without_binary_payloads(self) -> "DocumentFile":
        return replace(self, file_data_uri=None, cover_image_data_uri=None)
