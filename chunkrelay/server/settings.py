"""Relay server settings, read from the environment and ``.env``."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    cloud_provider: Literal["aws", "gcp"] = Field(default="aws")

    aws_region: str = Field(default="us-east-1")
    aws_access_key_id: str | None = Field(default=None)
    aws_secret_access_key: str | None = Field(default=None)
    aws_s3_bucket: str | None = Field(default=None)
    # S3-compatible endpoint (MinIO, R2, ...)
    aws_endpoint_url: str | None = Field(default=None)

    gcp_project_id: str | None = Field(default=None)
    gcp_client_email: str | None = Field(default=None)
    gcp_private_key: str | None = Field(default=None)
    gcp_bucket_name: str | None = Field(default=None)

    # Sessions
    session_store: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # App
    app_secret_key: str | None = Field(default=None)
    max_chunk_size_mb: int = Field(default=25, ge=1)
    probe_delay_ms: int = Field(default=100, ge=0)
    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    @field_validator("gcp_private_key")
    @classmethod
    def _unescape_private_key(cls, value: str | None) -> str | None:
        # Keys pasted into a single env line carry literal "\n"
        if value:
            return value.replace("\\n", "\n")
        return value

    @property
    def bucket(self) -> str | None:
        """Bucket of the selected provider."""
        return self.aws_s3_bucket if self.cloud_provider == "aws" else self.gcp_bucket_name

    @property
    def max_chunk_bytes(self) -> int:
        return self.max_chunk_size_mb * 1024 * 1024


_settings: ServerSettings | None = None


def get_settings() -> ServerSettings:
    global _settings
    if _settings is None:
        _settings = ServerSettings()
    return _settings


def reset_settings() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
