"""Tests for placeholder classification and the enrichment gate."""

from __future__ import annotations

import pytest

from docshelf.ingestion.extractor import (
    DOCX_TYPE,
    PDF_TYPE,
    image_only_pdf_text,
    pdf_failure_text,
    unsupported_text,
    word_failure_text,
)
from docshelf.ingestion.placeholder import SkipReason, enrichment_skip_reason, is_placeholder

REAL_TEXT = (
    "The committee met on Tuesday to discuss the annual budget and agreed "
    "to fund three new research projects."
)


class TestIsPlaceholder:
    """Test is_placeholder classification."""

    @pytest.mark.parametrize(
        "text, name, mime_type",
        [
            (image_only_pdf_text("scan.pdf"), "scan.pdf", PDF_TYPE),
            (pdf_failure_text("broken.pdf", "bad xref"), "broken.pdf", PDF_TYPE),
            (word_failure_text("secret.docx"), "secret.docx", DOCX_TYPE),
            (unsupported_text("photo.png", "image/png"), "photo.png", "image/png"),
        ],
    )
    def test_extractor_fallbacks_are_placeholders(self, text: str, name: str, mime_type: str) -> None:
        assert is_placeholder(text, name, mime_type) is True

    def test_missing_text_or_name(self) -> None:
        assert is_placeholder("", "a.txt", "text/plain") is True
        assert is_placeholder(REAL_TEXT, None, "text/plain") is True

    def test_real_text(self) -> None:
        assert is_placeholder(REAL_TEXT, "minutes.txt", "text/plain") is False

    def test_prefix_match_is_case_insensitive(self) -> None:
        text = "PDF CONTENT FOR Report.PDF goes here"
        assert is_placeholder(text, "report.pdf", PDF_TYPE) is True

    def test_ambiguous_prefix_needs_confirming_phrase(self) -> None:
        """'Content of <name>' alone is ordinary prose."""
        assert is_placeholder("Content of notes.txt: shopping list and more", "notes.txt", "text/plain") is False
        assert (
            is_placeholder(
                "Content of notes.txt. Full parsing requires specific libraries.",
                "notes.txt",
                "text/plain",
            )
            is True
        )

    def test_generic_phrase_for_non_textual_type(self) -> None:
        text = "Some preamble. Full parsing requires specific libraries."
        assert is_placeholder(text, "deck.pptx", "application/vnd.ms-powerpoint") is True

    def test_generic_phrase_ignored_for_textual_type(self) -> None:
        text = "An article about placeholder text in typography and layout design."
        assert is_placeholder(text, "article.txt", "text/plain") is False

    def test_is_pure(self) -> None:
        args = (word_failure_text("a.docx"), "a.docx", DOCX_TYPE)
        assert is_placeholder(*args) == is_placeholder(*args)


class TestEnrichmentSkipReason:
    """Test the gate in front of AI enrichment."""

    def test_very_short_text(self) -> None:
        assert enrichment_skip_reason("   tiny   ", "a.txt", "text/plain") is SkipReason.TOO_SHORT

    def test_short_text_below_enrichment_threshold(self) -> None:
        """A short but real note is skipped without being a placeholder."""
        text = "hello world, short note"
        assert is_placeholder(text, "note.txt", "text/plain") is False
        assert enrichment_skip_reason(text, "note.txt", "text/plain") is SkipReason.TOO_SHORT

    def test_placeholder_text(self) -> None:
        text = word_failure_text("secret.docx")
        assert enrichment_skip_reason(text, "secret.docx", DOCX_TYPE) is SkipReason.PLACEHOLDER

    def test_real_text_is_enriched(self) -> None:
        assert enrichment_skip_reason(REAL_TEXT, "minutes.txt", "text/plain") is None
