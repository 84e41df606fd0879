"""Text extraction for uploaded files.

PDFs are read with PyMuPDF (fitz), Word documents with mammoth. Every
failure is turned into a descriptive placeholder string containing the file
name, so extraction never blocks the rest of the pipeline.
"""

from __future__ import annotations

import io
import logging
from typing import Iterator

import fitz  # PyMuPDF
import mammoth

LOGGER = logging.getLogger(__name__)

PDF_TYPE = "application/pdf"
DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_TYPE = "application/msword"
TEXT_TYPE = "text/plain"

DOCX_PLACEHOLDER_NOTE = "(This is a placeholder text. The original file can be downloaded.)"


def image_only_pdf_text(name: str) -> str:
    return f"No text could be extracted from {name}. It might be an image-only PDF."


def pdf_failure_text(name: str, message: str) -> str:
    return f"Could not extract text from PDF {name}. Error: {message}"


def word_failure_text(name: str) -> str:
    return f"Could not extract text from {name}. {DOCX_PLACEHOLDER_NOTE}"


def unsupported_text(name: str, mime_type: str) -> str:
    return f"Content of {name} (type: {mime_type}). Full parsing requires specific libraries."


def _is_plain_text(name: str, mime_type: str) -> bool:
    return mime_type == TEXT_TYPE or name.lower().endswith(".txt")


def _is_pdf(name: str, mime_type: str) -> bool:
    return mime_type == PDF_TYPE or name.lower().endswith(".pdf")


def _is_word(name: str, mime_type: str) -> bool:
    lower = name.lower()
    return mime_type in (DOCX_TYPE, DOC_TYPE) or lower.endswith(".docx") or lower.endswith(".doc")


def iter_page_texts(data: bytes) -> Iterator[str]:
    """Yield the text of each PDF page, runs joined by a single space."""
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        for index in range(len(doc)):
            page = doc[index]
            words = page.get_text("words") or []
            yield " ".join(word[4] for word in words)
    finally:
        doc.close()


def extract_pdf_text(data: bytes, name: str) -> str:
    try:
        text = "\n".join(iter_page_texts(data)).strip()
    except Exception as exc:
        LOGGER.error("Failed to extract text from PDF %s: %s", name, exc)
        return pdf_failure_text(name, str(exc) or "Unknown PDF processing error")

    if not text:
        LOGGER.info("No text layer found in %s", name)
        return image_only_pdf_text(name)
    return text


def extract_word_text(data: bytes, name: str) -> str:
    try:
        result = mammoth.extract_raw_text(io.BytesIO(data))
    except Exception as exc:
        LOGGER.error("Failed to extract text from %s: %s", name, exc)
        return word_failure_text(name)

    if result.messages:
        LOGGER.warning("Converter messages while parsing %s: %s", name, result.messages)
    return result.value


def extract_text(data: bytes, name: str, mime_type: str) -> str:
    """Convert raw file bytes into text according to the declared type."""
    if _is_plain_text(name, mime_type):
        return data.decode("utf-8", errors="replace")
    if _is_pdf(name, mime_type):
        return extract_pdf_text(data, name)
    if _is_word(name, mime_type):
        return extract_word_text(data, name)
    return unsupported_text(name, mime_type)
