"""Application configuration defaults."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_CACHE_QUOTA = 5 * 1024 * 1024
DEFAULT_PAGE_SIZE = 12
DEFAULT_TEXT_MODEL = "gemini-2.0-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.0-flash-exp"


def _get_default_data_dir() -> Path:
    """Get the default data directory based on platform and execution context."""
    user_dir = Path.home() / ".docshelf"

    # When running as a frozen app (PyInstaller bundle)
    if getattr(sys, "frozen", False):
        return user_dir

    # When running from source, prefer local data/ if it exists
    local_dir = Path("data")
    if local_dir.exists():
        return local_dir

    return user_dir


@dataclass(slots=True, frozen=True)
class Capabilities:
    """Optional subsystems that are switched on by credentials."""

    ai: bool = False
    assets: bool = False


@dataclass(slots=True)
class AppConfig:
    data_dir: Path | None = None
    cache_quota_bytes: int = DEFAULT_CACHE_QUOTA
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    page_size: int = DEFAULT_PAGE_SIZE
    gemini_api_key: str | None = None
    gemini_text_model: str = DEFAULT_TEXT_MODEL
    gemini_image_model: str = DEFAULT_IMAGE_MODEL
    s3_bucket: str | None = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    capabilities: Capabilities = field(init=False)

    def __post_init__(self) -> None:
        if self.data_dir is None:
            self.data_dir = _get_default_data_dir()
        # Resolved once; call sites read the flags instead of re-checking credentials.
        self.capabilities = Capabilities(
            ai=bool(self.gemini_api_key),
            assets=bool(self.s3_bucket),
        )

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env") -> "AppConfig":
        """Build a config from environment variables (and an optional .env file)."""
        if env_file is not None:
            load_dotenv(env_file)

        data_dir = os.getenv("DOCSHELF_DATA_DIR")
        quota = os.getenv("DOCSHELF_CACHE_QUOTA")
        return cls(
            data_dir=Path(data_dir) if data_dir else None,
            cache_quota_bytes=int(quota) if quota else DEFAULT_CACHE_QUOTA,
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_AI_API_KEY") or None,
            gemini_text_model=os.getenv("GEMINI_TEXT_MODEL", DEFAULT_TEXT_MODEL),
            gemini_image_model=os.getenv("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            s3_bucket=os.getenv("DOCSHELF_S3_BUCKET") or None,
            s3_region=os.getenv("AWS_REGION", "us-east-1"),
            s3_endpoint_url=os.getenv("DOCSHELF_S3_ENDPOINT") or None,
        )

    def resolve_path(self, name: str, base_dir: Path | None = None) -> Path:
        if self.data_dir is None:
            self.data_dir = _get_default_data_dir()
        data_dir = Path(self.data_dir)
        if data_dir.is_absolute() or base_dir is None:
            return data_dir / name
        return base_dir / data_dir / name

    @property
    def cache_path(self) -> Path:
        return self.resolve_path("cache.db")

    @property
    def collection_path(self) -> Path:
        return self.resolve_path("articles.db")
