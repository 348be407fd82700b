from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_KEY = "change-me"

DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = (
    # images
    "jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "tif", "svg", "ico", "avif", "heic", "heif",
    # video
    "mp4", "webm", "avi", "mov", "wmv", "flv", "mkv", "m4v", "3gp", "ogv",
)


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIACDN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: str = Field(default=DEFAULT_API_KEY, description="Shared credential required on every upload.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the media CDN."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIACDN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Media CDN"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./mediacdn.db",
        description="SQLAlchemy compatible DSN.",
    )

    storage_backend: Literal["local"] = Field(default="local", description="Active storage implementation.")
    storage_root: Path = Field(default_factory=lambda: Path("storage"), description="Root for stored blobs.")
    images_namespace: str = Field(default="img", description="Namespace holding full-size assets.")
    thumbs_namespace: str = Field(default="thumbs", description="Namespace holding thumbnails.")
    cdn_domain: str = Field(default="http://localhost:8000", description="Public origin serving the namespaces.")

    max_upload_size_bytes: int = Field(default=20 * 1024 * 1024, description="Hard limit for ingest payloads.")
    max_image_size: int = Field(default=700, ge=1, description="Largest side of a stored full-size image.")
    max_thumb_size: int = Field(default=300, ge=1, description="Largest side of a thumbnail.")
    jpeg_quality: int = Field(default=95, ge=0, le=100)
    png_compression: int = Field(default=6, ge=0, le=9)

    allowed_extensions: tuple[str, ...] = Field(default=DEFAULT_ALLOWED_EXTENSIONS)
    thumbnail_extensions: tuple[str, ...] = Field(default=("jpg", "jpeg", "png"))

    deduplicate_uploads: bool = Field(
        default=True,
        description="Return the existing record for duplicate content instead of renaming it.",
    )
    normalize_filenames: bool = Field(default=True, description="Rewrite client filenames to filesystem-safe names.")
    ingest_conflict_retries: int = Field(
        default=2,
        ge=0,
        description="Re-resolution attempts after a unique constraint conflict.",
    )

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def images_url(self) -> str:
        return f"{self.cdn_domain.rstrip('/')}/{self.images_namespace}/"

    @property
    def thumbs_url(self) -> str:
        return f"{self.cdn_domain.rstrip('/')}/{self.thumbs_namespace}/"


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "MEDIACDN_ENV": "MEDIACDN_ENVIRONMENT",
        "MEDIACDN_DB_URL": "MEDIACDN_DATABASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    secrets = Secrets.from_settings(settings)

    if settings.environment_lower == "production" and secrets.api_key == DEFAULT_API_KEY:
        raise ValueError("Production environment must have a non-default API key.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "Secrets", "get_settings", "DEFAULT_ALLOWED_EXTENSIONS"]
