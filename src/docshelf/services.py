"""Wiring of the stores and external services from an :class:`AppConfig`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from docshelf.config import AppConfig
from docshelf.enrichment.client import GeminiClient
from docshelf.enrichment.enricher import Enricher
from docshelf.enrichment.summarizer import Summarizer
from docshelf.storage.assets import AssetLifecycle, create_s3_client
from docshelf.storage.local_cache import LocalCache
from docshelf.storage.remote import RemoteCollection, SQLiteCollection
from docshelf.storage.tiered import TieredStore

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    config: AppConfig
    store: TieredStore
    enricher: Enricher
    summarizer: Summarizer
    assets: AssetLifecycle | None = None
    ai_client: GeminiClient | None = None

    @property
    def cache(self) -> LocalCache:
        return self.store.cache

    @property
    def collection(self) -> RemoteCollection:
        return self.store.collection

    async def aclose(self) -> None:
        if self.ai_client is not None:
            await self.ai_client.aclose()
        self.cache.close()
        close = getattr(self.collection, "close", None)
        if close is not None:
            close()


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def build_services(config: AppConfig, base_dir: Path | None = None) -> Services:
    """Open the local stores and enable the optional services the config allows."""
    cache_path = config.resolve_path("cache.db", base_dir)
    collection_path = config.resolve_path("articles.db", base_dir)
    _ensure_parent(cache_path)
    _ensure_parent(collection_path)

    cache = LocalCache(cache_path, quota_bytes=config.cache_quota_bytes)
    collection = SQLiteCollection(collection_path)
    store = TieredStore(cache, collection)

    ai_client = None
    if config.capabilities.ai:
        ai_client = GeminiClient(
            config.gemini_api_key,  # type: ignore[arg-type]
            text_model=config.gemini_text_model,
            image_model=config.gemini_image_model,
        )
    else:
        LOGGER.info("AI service not configured; enrichment and summaries are disabled")

    assets = None
    if config.capabilities.assets:
        client = create_s3_client(config.s3_region, config.s3_endpoint_url)
        assets = AssetLifecycle(client, config.s3_bucket)  # type: ignore[arg-type]
    else:
        LOGGER.info("Blob storage not configured; original files stay inline")

    return Services(
        config=config,
        store=store,
        enricher=Enricher(ai_client),
        summarizer=Summarizer(ai_client),
        assets=assets,
        ai_client=ai_client,
    )
