"""Amazon S3 (and S3-compatible) backend using boto3's multipart API."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from chunkrelay.core.exceptions import StorageBackendError

from .base import StorageBackend

logger = logging.getLogger(__name__)


class S3Backend(StorageBackend):
    provider = "aws"

    def __init__(
        self,
        bucket: str,
        *,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        endpoint_url: str | None = None,
        client: Any | None = None,
    ):
        """Create the backend.

        Args:
            bucket: Target bucket.
            region: AWS region, used for the client and public URLs.
            access_key_id: Access key; the default credential chain is used if unset.
            secret_access_key: Secret key.
            endpoint_url: Custom endpoint for S3-compatible stores.
            client: Pre-built boto3 S3 client (tests).
        """
        super().__init__(bucket)
        self.region = region
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        self.s3 = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
            config=BotoConfig(signature_version="s3v4"),
        )

    def _fail(
        self, operation: str, error: Exception, key: str | None = None
    ) -> StorageBackendError:
        return StorageBackendError(self.provider, operation, error, key=key)

    def begin_multipart(self, key: str, content_type: str) -> str:
        try:
            resp = self.s3.create_multipart_upload(
                Bucket=self.bucket, Key=key, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            raise self._fail("create_multipart_upload", e, key) from e
        return resp["UploadId"]

    def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        try:
            resp = self.s3.upload_part(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._fail("upload_part", e, key) from e
        return resp["ETag"]

    def complete_multipart(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[tuple[int, str]],
        content_type: str,
    ) -> None:
        try:
            if not parts:
                # S3 requires at least one part to complete
                self.s3.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)
                self.s3.put_object(Bucket=self.bucket, Key=key, Body=b"", ContentType=content_type)
                return

            self.s3.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [{"PartNumber": number, "ETag": etag} for number, etag in parts]
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise self._fail("complete_multipart_upload", e, key) from e

    def abort_multipart(self, key: str, upload_id: str) -> None:
        try:
            self.s3.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)
        except (BotoCoreError, ClientError) as e:
            raise self._fail("abort_multipart_upload", e, key) from e

    def delete_object(self, key: str) -> None:
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise self._fail("delete_object", e, key) from e

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def check_access(self) -> bool:
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            logger.warning("Bucket %s is not accessible: %s", self.bucket, e)
            return False
        return True
