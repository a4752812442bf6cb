"""Storage backend interface for the relay."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence


class StorageBackend(ABC):
    """Multipart object storage used by the session manager.

    A backend hands out an opaque ``upload_id`` per multipart upload and an
    opaque token per uploaded part; the manager stores both and passes them
    back unchanged.
    """

    provider: str = ""

    def __init__(self, bucket: str):
        self.bucket = bucket

    @abstractmethod
    def begin_multipart(self, key: str, content_type: str) -> str:
        """Start a multipart upload and return its upload id."""

    @abstractmethod
    def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        """Store one part and return its acknowledgment token.

        Re-uploading the same part number replaces the earlier bytes.
        """

    @abstractmethod
    def complete_multipart(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[tuple[int, str]],
        content_type: str,
    ) -> None:
        """Assemble ``parts`` (ascending part order) into the final object.

        An empty part list produces an empty object.
        """

    @abstractmethod
    def abort_multipart(self, key: str, upload_id: str) -> None:
        """Discard a multipart upload and every part stored for it."""

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Delete an object; a missing object is not an error."""

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Stable URL of an object."""

    @abstractmethod
    def check_access(self) -> bool:
        """Return True if the bucket is reachable with the configured credentials."""
