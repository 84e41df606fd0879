"""Async HTTP client for the Gemini generateContent API."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from docshelf.errors import AIServiceError

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_ONLY_HIGH"},
]


@dataclass(slots=True)
class ImageResponse:
    """Image part of a model response, already shaped as a URL when present."""

    url: Optional[str]
    text: str = ""


def _parts(response: Any) -> List[Dict[str, Any]]:
    if not isinstance(response, dict):
        raise AIServiceError(f"Model returned an unexpected payload: {type(response).__name__}")
    candidates = response.get("candidates") or []
    if not candidates:
        feedback = response.get("promptFeedback") or {}
        raise AIServiceError(f"Model returned no candidates (feedback: {feedback})")
    if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
        raise AIServiceError("Model returned malformed candidates")
    content = candidates[0].get("content") or {}
    if not isinstance(content, dict):
        raise AIServiceError("Model returned malformed content")
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        raise AIServiceError("Model returned malformed content parts")
    return [part for part in parts if isinstance(part, dict)]


def _joined_text(parts: List[Dict[str, Any]]) -> str:
    return "".join(part["text"] for part in parts if isinstance(part.get("text"), str))


class GeminiClient:
    """Thin wrapper over ``httpx.AsyncClient`` for text, JSON and image generation."""

    def __init__(
        self,
        api_key: str,
        *,
        text_model: str,
        image_model: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        retries: int = 2,
        backoff: float = 0.5,
    ) -> None:
        self.api_key = api_key
        self.text_model = text_model
        self.image_model = image_model
        self.base_url = base_url.rstrip("/")
        self.retries = max(1, retries)
        self.backoff = backoff
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _generate(self, model: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/models/{model}:generateContent"
        delay = self.backoff
        for attempt in range(1, self.retries + 1):
            try:
                resp = await self._client.post(url, params={"key": self.api_key}, json=payload)
                resp.raise_for_status()
                return resp.json()
            except (httpx.HTTPError, ValueError) as exc:
                if attempt == self.retries:
                    raise AIServiceError(f"Request to {model} failed: {exc}") from exc
                LOGGER.warning(
                    "Request attempt %s to %s failed, retrying in %.1fs: %s", attempt, model, delay, exc
                )
                await asyncio.sleep(delay)
                delay *= 2
        raise AIServiceError(f"Request to {model} failed")  # pragma: no cover

    async def generate_text(self, prompt: str) -> str:
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        response = await self._generate(self.text_model, payload)
        return _joined_text(_parts(response)).strip()

    async def generate_json(self, prompt: str) -> Any:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        response = await self._generate(self.text_model, payload)
        raw = _joined_text(_parts(response))
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise AIServiceError(f"Model returned malformed JSON: {raw[:200]!r}") from exc

    async def generate_image(self, prompt: str) -> ImageResponse:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
            "safetySettings": SAFETY_SETTINGS,
        }
        response = await self._generate(self.image_model, payload)
        parts = _parts(response)
        text = _joined_text(parts)
        for part in parts:
            inline = part.get("inlineData")
            if not isinstance(inline, dict):
                if inline:
                    LOGGER.warning("Ignoring malformed inline data in image response")
                continue
            if isinstance(inline.get("data"), str) and inline["data"]:
                mime_type = inline.get("mimeType")
                if not isinstance(mime_type, str) or not mime_type:
                    mime_type = "application/octet-stream"
                return ImageResponse(url=f"data:{mime_type};base64,{inline['data']}", text=text)
        return ImageResponse(url=None, text=text)
