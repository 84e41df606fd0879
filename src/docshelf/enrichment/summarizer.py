"""Summary generation for stored documents."""

from __future__ import annotations

import logging

from docshelf.enrichment.client import GeminiClient
from docshelf.errors import AIServiceError

LOGGER = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Please provide a concise summary of the following text. "
    "Focus on the main points and key information:\n\n{text}"
)


class Summarizer:
    def __init__(self, client: GeminiClient | None) -> None:
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def summarize(self, text: str) -> str:
        if not text or not text.strip():
            raise ValueError("No text provided for summarization")
        if self.client is None:
            raise AIServiceError("AI summarization is not configured")

        summary = await self.client.generate_text(SUMMARY_PROMPT.format(text=text))
        if not summary:
            raise AIServiceError("No summary generated")
        LOGGER.debug("Generated summary of %d characters", len(summary))
        return summary
