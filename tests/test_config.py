"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from docshelf.config import (
    DEFAULT_CACHE_QUOTA,
    DEFAULT_PAGE_SIZE,
    DEFAULT_TEXT_MODEL,
    MAX_UPLOAD_BYTES,
    AppConfig,
    Capabilities,
)

_ENV_VARS = (
    "DOCSHELF_DATA_DIR",
    "DOCSHELF_CACHE_QUOTA",
    "GEMINI_API_KEY",
    "GOOGLE_AI_API_KEY",
    "GEMINI_TEXT_MODEL",
    "GEMINI_IMAGE_MODEL",
    "DOCSHELF_S3_BUCKET",
    "AWS_REGION",
    "DOCSHELF_S3_ENDPOINT",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _ENV_VARS:
        # setenv first so teardown also removes values loaded from .env files
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestAppConfig:
    """Test AppConfig dataclass."""

    def test_default_config(self) -> None:
        """Should create config with default values."""
        config = AppConfig(data_dir=Path("data"))

        assert config.cache_quota_bytes == DEFAULT_CACHE_QUOTA == 5 * 1024 * 1024
        assert config.max_upload_bytes == MAX_UPLOAD_BYTES == 5 * 1024 * 1024
        assert config.page_size == DEFAULT_PAGE_SIZE == 12
        assert config.gemini_text_model == DEFAULT_TEXT_MODEL
        assert config.capabilities == Capabilities(ai=False, assets=False)

    def test_capabilities_follow_credentials(self) -> None:
        config = AppConfig(data_dir=Path("data"), gemini_api_key="key", s3_bucket="bucket")

        assert config.capabilities.ai is True
        assert config.capabilities.assets is True

    def test_default_data_dir_is_set(self) -> None:
        config = AppConfig()
        assert config.data_dir is not None

    def test_resolve_path_absolute(self, tmp_path: Path) -> None:
        """Should ignore base_dir for an absolute data directory."""
        config = AppConfig(data_dir=tmp_path)

        assert config.resolve_path("cache.db", Path("/elsewhere")) == tmp_path / "cache.db"
        assert config.cache_path == tmp_path / "cache.db"
        assert config.collection_path == tmp_path / "articles.db"

    def test_resolve_path_relative_with_base(self) -> None:
        config = AppConfig(data_dir=Path("data"))

        resolved = config.resolve_path("cache.db", base_dir=Path("/base"))

        assert resolved == Path("/base/data/cache.db")

    def test_resolve_path_relative_no_base(self) -> None:
        config = AppConfig(data_dir=Path("data"))
        assert config.resolve_path("cache.db") == Path("data/cache.db")


class TestFromEnv:
    """Test environment loading."""

    def test_from_env_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        config = AppConfig.from_env(env_file=None)

        assert config.gemini_api_key is None
        assert config.s3_bucket is None
        assert config.s3_region == "us-east-1"
        assert config.capabilities == Capabilities()

    def test_from_env_reads_variables(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        clean_env.setenv("DOCSHELF_DATA_DIR", str(tmp_path))
        clean_env.setenv("DOCSHELF_CACHE_QUOTA", "1024")
        clean_env.setenv("GOOGLE_AI_API_KEY", "secret")
        clean_env.setenv("DOCSHELF_S3_BUCKET", "docs")
        clean_env.setenv("DOCSHELF_S3_ENDPOINT", "http://localhost:9000")

        config = AppConfig.from_env(env_file=None)

        assert config.data_dir == tmp_path
        assert config.cache_quota_bytes == 1024
        assert config.gemini_api_key == "secret"
        assert config.s3_endpoint_url == "http://localhost:9000"
        assert config.capabilities == Capabilities(ai=True, assets=True)

    def test_from_env_loads_dotenv_file(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("GEMINI_API_KEY=from-file\n", encoding="utf-8")

        config = AppConfig.from_env(env_file=env_file)

        assert config.gemini_api_key == "from-file"
        assert config.capabilities.ai is True
