"""Google Cloud Storage backend.

GCS has no S3-style multipart API. Each part is written as a temporary
object under ``<key>.parts/<upload_id>/`` and completion composes them in
part order. A compose call accepts at most 32 sources, so larger uploads
are folded through intermediate objects.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Any

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import storage
from google.oauth2 import service_account

from chunkrelay.core.exceptions import StorageBackendError

from .base import StorageBackend

logger = logging.getLogger(__name__)

MAX_COMPOSE_SOURCES = 32


class GCSBackend(StorageBackend):
    provider = "gcp"

    def __init__(
        self,
        bucket: str,
        *,
        project_id: str | None = None,
        client_email: str | None = None,
        private_key: str | None = None,
        client: Any | None = None,
    ):
        """Create the backend.

        Args:
            bucket: Target bucket.
            project_id: GCP project.
            client_email: Service account email.
            private_key: Service account PEM key.
            client: Pre-built ``storage.Client`` (tests).
        """
        super().__init__(bucket)
        if client is None:
            credentials = None
            if client_email and private_key:
                credentials = service_account.Credentials.from_service_account_info(
                    {
                        "type": "service_account",
                        "project_id": project_id,
                        "client_email": client_email,
                        "private_key": private_key,
                        "token_uri": "https://oauth2.googleapis.com/token",
                    }
                )
            client = storage.Client(project=project_id, credentials=credentials)
        self.client = client
        self._bucket = client.bucket(bucket)

    @staticmethod
    def _parts_prefix(key: str, upload_id: str) -> str:
        return f"{key}.parts/{upload_id}/"

    def _part_name(self, key: str, upload_id: str, part_number: int) -> str:
        return f"{self._parts_prefix(key, upload_id)}{part_number:05d}"

    def begin_multipart(self, key: str, content_type: str) -> str:
        return uuid.uuid4().hex

    def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        blob = self._bucket.blob(self._part_name(key, upload_id, part_number))
        try:
            blob.upload_from_string(data, content_type="application/octet-stream")
        except GoogleAPIError as e:
            raise StorageBackendError(self.provider, "upload_part", e, key=key) from e
        return str(blob.generation)

    def complete_multipart(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[tuple[int, str]],
        content_type: str,
    ) -> None:
        target = self._bucket.blob(key)
        target.content_type = content_type
        try:
            if not parts:
                target.upload_from_string(b"", content_type=content_type)
                return

            sources = [self._bucket.blob(self._part_name(key, upload_id, n)) for n, _ in parts]
            round_num = 0
            while len(sources) > MAX_COMPOSE_SOURCES:
                folded = []
                for i in range(0, len(sources), MAX_COMPOSE_SOURCES):
                    group = sources[i : i + MAX_COMPOSE_SOURCES]
                    name = f"{self._parts_prefix(key, upload_id)}compose-{round_num}-{i:05d}"
                    blob = self._bucket.blob(name)
                    blob.compose(group)
                    folded.append(blob)
                sources = folded
                round_num += 1

            target.compose(sources)
        except GoogleAPIError as e:
            raise StorageBackendError(self.provider, "compose", e, key=key) from e

        # The object is final; leftover parts only cost storage
        try:
            self._delete_prefix(key, upload_id)
        except GoogleAPIError as e:
            logger.warning("Could not list temporary parts of %s: %s", key, e)

    def _delete_prefix(self, key: str, upload_id: str) -> None:
        for blob in self.client.list_blobs(self.bucket, prefix=self._parts_prefix(key, upload_id)):
            try:
                blob.delete()
            except NotFound:
                continue
            except GoogleAPIError as e:
                logger.warning("Could not delete temporary part %s: %s", blob.name, e)

    def abort_multipart(self, key: str, upload_id: str) -> None:
        try:
            self._delete_prefix(key, upload_id)
        except GoogleAPIError as e:
            raise StorageBackendError(self.provider, "abort", e, key=key) from e

    def delete_object(self, key: str) -> None:
        try:
            self._bucket.blob(key).delete()
        except NotFound:
            return
        except GoogleAPIError as e:
            raise StorageBackendError(self.provider, "delete_object", e, key=key) from e

    def public_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket}/{key}"

    def check_access(self) -> bool:
        try:
            return bool(self._bucket.exists())
        except GoogleAPIError as e:
            logger.warning("Bucket %s is not accessible: %s", self.bucket, e)
            return False
