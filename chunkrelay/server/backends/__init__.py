"""Storage backends and the factory that picks one from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chunkrelay.core.exceptions import ConfigurationError

from .base import StorageBackend

if TYPE_CHECKING:
    from chunkrelay.server.settings import ServerSettings


def create_backend(settings: "ServerSettings") -> StorageBackend:
    """Build the backend for the configured provider.

    Raises:
        ConfigurationError: If the bucket or credentials are missing.
    """
    if settings.cloud_provider == "aws":
        from .s3 import S3Backend

        if not settings.aws_s3_bucket:
            raise ConfigurationError("AWS_S3_BUCKET is required", field="aws_s3_bucket")
        if bool(settings.aws_access_key_id) != bool(settings.aws_secret_access_key):
            raise ConfigurationError(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together",
                field="aws_access_key_id",
            )
        return S3Backend(
            settings.aws_s3_bucket,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            endpoint_url=settings.aws_endpoint_url,
        )

    if settings.cloud_provider == "gcp":
        from .gcs import GCSBackend

        if not settings.gcp_bucket_name:
            raise ConfigurationError("GCP_BUCKET_NAME is required", field="gcp_bucket_name")
        if not (settings.gcp_client_email and settings.gcp_private_key):
            raise ConfigurationError(
                "GCP_CLIENT_EMAIL and GCP_PRIVATE_KEY are required",
                field="gcp_client_email",
            )
        return GCSBackend(
            settings.gcp_bucket_name,
            project_id=settings.gcp_project_id,
            client_email=settings.gcp_client_email,
            private_key=settings.gcp_private_key,
        )

    raise ConfigurationError(
        f"Unsupported cloud provider: {settings.cloud_provider}",
        field="cloud_provider",
        value=settings.cloud_provider,
    )


__all__ = ["StorageBackend", "create_backend"]
