"""AI enrichment: author/source/edition extraction and symbolic cover images.

Both operations are fail-soft. A service error, a malformed response or a
disabled AI capability yields an absent result; nothing here raises past the
pipeline boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator

from docshelf.enrichment.client import GeminiClient
from docshelf.errors import AIServiceError
from docshelf.ingestion.placeholder import ENRICHMENT_MIN_CHARS
from docshelf.models import DEFAULT_SOURCE, DocumentFile

LOGGER = logging.getLogger(__name__)

COVER_INPUT_CHARS = 300
GENERIC_SOURCES = {"file upload", "local document"}

DETAILS_PROMPT = """Analyze the following document text and identify three pieces of information, \
being as concise and accurate as possible. Focus on the beginning, end, headers and footers.

1. author: the primary individual author ("By [Name]", "Author: [Name]"). Only the person's name.
2. source: the publication, magazine, journal or organization name only ("Published in X", \
"Source: X", "Journal: X"). For URLs return only the domain. Never include edition, date, \
volume, article titles, sentences or generic terms such as "File Upload" or "Local Document".
3. edition: the edition, issue, volume or publication date only ("May 2025", \
"Vol. 3, Issue 2", "Spring Edition").

Answer with a JSON object with the keys "author", "source" and "edition". Use null for any \
field that is not clearly identifiable.

Document Text:
{text}"""

COVER_PROMPT = """Create a purely visual, abstract and symbolic graphical image or pattern \
inspired by the thematic essence of the material below.

ABSOLUTELY NO text characters, letters, words, numbers or any form of written language may \
appear anywhere in the image. Do not render the input text, titles or captions. Use colors, \
shapes, textures and symbols only.

Image specifications: 400x200 pixels, abstract, minimalist, aim for under 50kb.

Material to inspire the image:
"{text}\""""


@dataclass(slots=True, frozen=True)
class DocumentDetails:
    author: Optional[str] = None
    source: Optional[str] = None
    edition: Optional[str] = None
    error: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not (self.author or self.source or self.edition)


class _DetailsPayload(BaseModel):
    author: Optional[str] = None
    source: Optional[str] = None
    edition: Optional[str] = None

    @field_validator("author", "source", "edition", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("expected a string")
        value = value.strip()
        return value or None

    @field_validator("source")
    @classmethod
    def _drop_generic_source(cls, value):
        if value and value.lower() in GENERIC_SOURCES:
            return None
        return value


def apply_details(doc: DocumentFile, details: DocumentDetails) -> DocumentFile:
    """Merge extracted details, keeping the default source unless a real one was found."""
    return replace(
        doc,
        author=details.author or doc.author,
        source=details.source or doc.source or DEFAULT_SOURCE,
        edition=details.edition or doc.edition,
    )


class Enricher:
    """Runs the detail-extraction and cover-image services for one document at a time."""

    def __init__(self, client: GeminiClient | None, *, min_chars: int = ENRICHMENT_MIN_CHARS) -> None:
        self.client = client
        self.min_chars = min_chars

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def extract_details(self, text: str) -> DocumentDetails:
        if self.client is None or not text or len(text.strip()) < self.min_chars:
            return DocumentDetails()
        try:
            raw = await self.client.generate_json(DETAILS_PROMPT.format(text=text))
            payload = _DetailsPayload.model_validate(raw)
        except (AIServiceError, ValidationError) as exc:
            LOGGER.error("Detail extraction failed: %s", exc)
            return DocumentDetails(error=str(exc))
        return DocumentDetails(author=payload.author, source=payload.source, edition=payload.edition)

    async def generate_cover(self, text: str) -> Optional[str]:
        if self.client is None or not text or len(text.strip()) < self.min_chars:
            return None
        prompt = COVER_PROMPT.format(text=text[:COVER_INPUT_CHARS])
        try:
            response = await self.client.generate_image(prompt)
        except AIServiceError as exc:
            LOGGER.error("Cover generation failed: %s", exc)
            return None

        if not response.url:
            LOGGER.error("Cover generation returned no image. Model text: %s", response.text or "none")
            return None
        if not response.url.startswith("data:image/"):
            LOGGER.error("Cover generation returned a non-image payload: %s", response.url[:80])
            return None
        return response.url
