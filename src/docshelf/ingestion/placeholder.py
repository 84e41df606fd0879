"""Classification of extracted text as real content or a degraded stand-in."""

from __future__ import annotations

from enum import Enum
from typing import Optional

ABSOLUTE_MIN_CHARS = 10
ENRICHMENT_MIN_CHARS = 50

TEXTUAL_TYPES = frozenset(
    {
        "text/plain",
        "text/html",
        "application/json",
        "application/xml",
        "text/csv",
    }
)

CONFIRMING_PHRASES = (
    "(this is a placeholder text. the original file can be downloaded.)",
    "full parsing requires specific libraries",
)
GENERIC_PHRASES = (
    "placeholder text",
    "full parsing requires specific libraries.",
)


class SkipReason(str, Enum):
    TOO_SHORT = "too_short"
    PLACEHOLDER = "placeholder"


def _definite_prefixes(name: str) -> tuple[str, ...]:
    return (
        f"could not extract text from {name}",
        f"could not extract text from pdf {name}",
        f"no text could be extracted from {name}",
        f"pdf content for {name}",
    )


def _ambiguous_prefixes(name: str) -> tuple[str, ...]:
    return (
        f"docx content for {name}",
        f"content of {name}",
    )


def is_placeholder(text: Optional[str], name: Optional[str], mime_type: Optional[str]) -> bool:
    """Return True when ``text`` stands in for content that was never parsed."""
    if not text or not name:
        return True

    lower_text = text.lower()
    lower_name = name.lower()
    lower_type = (mime_type or "").lower()

    if lower_text.startswith(_definite_prefixes(lower_name)):
        return True
    if lower_text.startswith(_ambiguous_prefixes(lower_name)) and any(
        phrase in lower_text for phrase in CONFIRMING_PHRASES
    ):
        return True

    if lower_type and lower_type not in TEXTUAL_TYPES:
        if any(phrase in lower_text for phrase in GENERIC_PHRASES):
            return True

    return False


def enrichment_skip_reason(
    text: Optional[str], name: Optional[str], mime_type: Optional[str]
) -> Optional[SkipReason]:
    """Say why AI enrichment must not run for this text, or None if it may."""
    stripped = (text or "").strip()
    if len(stripped) <= ABSOLUTE_MIN_CHARS:
        return SkipReason.TOO_SHORT
    if is_placeholder(text, name, mime_type):
        return SkipReason.PLACEHOLDER
    if len(stripped) < ENRICHMENT_MIN_CHARS:
        return SkipReason.TOO_SHORT
    return None
