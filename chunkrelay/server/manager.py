"""Multipart session manager: the relay side of the chunk protocol.

Translates the five protocol actions into storage backend calls and keeps
session, cancellation and key-lookup state in a :class:`SessionStore`.
Cancellation is authoritative: once a file id is in the cancelled set, no
``upload`` or ``complete`` for it succeeds until it is initialized again.
"""

from __future__ import annotations

import base64
import binascii
import logging

from chunkrelay.core.exceptions import (
    ChunkRelayError,
    SessionNotFoundError,
    UploadCancelledError,
    UploadRejectedError,
)
from chunkrelay.core.logging import AuditLogger, get_audit_logger
from chunkrelay.models.file import DEFAULT_MIME_TYPE
from chunkrelay.models.protocol import (
    AbortResponse,
    ChunkAction,
    ChunkResponse,
    CompleteResponse,
    InitializeResponse,
    StatusResponse,
    UploadChunkRequest,
)
from chunkrelay.server.backends.base import StorageBackend
from chunkrelay.server.keys import generate_file_key
from chunkrelay.server.sessions import SessionStore, UploadSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_BYTES = 25 * 1024 * 1024

ABORT_MARKED = "Upload marked as cancelled"
ABORT_CLEANED = "Upload aborted and file cleanup attempted"


class MultipartSessionManager:
    """Owns every multipart session of this relay."""

    def __init__(
        self,
        backend: StorageBackend,
        store: SessionStore,
        *,
        max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES,
        audit: AuditLogger | None = None,
    ):
        self.backend = backend
        self.store = store
        self.max_chunk_bytes = max_chunk_bytes
        self.audit = audit or get_audit_logger()

    # =========================================================================
    # Dispatch
    # =========================================================================

    def handle(
        self, request: UploadChunkRequest
    ) -> InitializeResponse | StatusResponse | ChunkResponse | CompleteResponse | AbortResponse:
        """Route a protocol request to its action.

        Raises:
            UploadRejectedError: 400 for an unknown action or missing fields.
            SessionNotFoundError: No session for the file id.
            UploadCancelledError: The file id is cancelled.
            StorageBackendError: The object store failed.
        """
        try:
            action = ChunkAction(request.action)
        except ValueError:
            raise UploadRejectedError(
                request.action, 400, "Invalid action", request.file_id
            ) from None

        if action == ChunkAction.INITIALIZE:
            if not request.file_name:
                raise UploadRejectedError(
                    action.value, 400, "fileName is required", request.file_id
                )
            return self.initialize(request.file_id, request.file_name, request.file_type)

        if action == ChunkAction.STATUS:
            return self.status(request.file_id)

        if action == ChunkAction.UPLOAD:
            if request.current_chunk is None or request.chunk_data is None:
                raise UploadRejectedError(
                    action.value, 400, "currentChunk and chunkData are required", request.file_id
                )
            return self.upload(request.file_id, request.current_chunk, request.chunk_data)

        if action == ChunkAction.COMPLETE:
            return self.complete(request.file_id)

        return self.abort(request.file_id, upload_id=request.upload_id, file_key=request.file_key)

    # =========================================================================
    # Actions
    # =========================================================================

    def initialize(
        self,
        file_id: str,
        file_name: str,
        file_type: str | None = None,
    ) -> InitializeResponse:
        """Open a multipart upload for ``file_id``, clearing any earlier cancel."""
        self.store.clear_cancelled(file_id)

        previous = self.store.get(file_id)
        if previous is not None:
            logger.info("Replacing open session for %s", file_id)
            self._abort_quietly(previous.file_key, previous.upload_id)

        content_type = file_type or DEFAULT_MIME_TYPE
        file_key = generate_file_key(file_name)
        self.store.remember_key(file_id, file_key)
        upload_id = self.backend.begin_multipart(file_key, content_type)
        self.store.put(
            UploadSession(
                file_id=file_id,
                upload_id=upload_id,
                file_key=file_key,
                content_type=content_type,
            )
        )

        self.audit.log_operation(
            "initialize", file_id=file_id, key=file_key, provider=self.backend.provider
        )
        return InitializeResponse(upload_id=upload_id, file_key=file_key)

    def status(self, file_id: str) -> StatusResponse:
        return StatusResponse(cancelled=self.store.is_cancelled(file_id))

    def upload(self, file_id: str, current_chunk: int, chunk_data: str) -> ChunkResponse:
        """Store chunk ``current_chunk`` as part ``current_chunk + 1``.

        Raises:
            UploadCancelledError: Cancelled before or while the part was stored.
            SessionNotFoundError: No open session.
            UploadRejectedError: 400 for bad base64, 413 for an oversized chunk.
        """
        if self.store.is_cancelled(file_id):
            raise UploadCancelledError(file_id)

        session = self.store.get(file_id)
        if session is None:
            raise SessionNotFoundError(ChunkAction.UPLOAD.value, file_id)

        try:
            data = base64.b64decode(chunk_data, validate=True)
        except (binascii.Error, ValueError):
            raise UploadRejectedError(
                ChunkAction.UPLOAD.value, 400, "Invalid chunk data", file_id
            ) from None

        if len(data) > self.max_chunk_bytes:
            raise UploadRejectedError(
                ChunkAction.UPLOAD.value,
                413,
                f"Chunk of {len(data)} bytes exceeds the {self.max_chunk_bytes} byte limit",
                file_id,
            )

        part_number = current_chunk + 1
        token = self.backend.upload_part(session.file_key, session.upload_id, part_number, data)
        parts_received = self.store.record_part(file_id, part_number, token)

        if self.store.is_cancelled(file_id):
            raise UploadCancelledError(file_id)
        if parts_received is None:
            raise SessionNotFoundError(ChunkAction.UPLOAD.value, file_id)

        return ChunkResponse(part_number=part_number, parts_received=parts_received)

    def complete(self, file_id: str) -> CompleteResponse:
        """Assemble the stored parts in part order and close the session."""
        if self.store.is_cancelled(file_id):
            raise UploadCancelledError(file_id)

        session = self.store.get(file_id)
        if session is None:
            raise SessionNotFoundError(ChunkAction.COMPLETE.value, file_id)

        parts = session.sorted_parts()
        self.backend.complete_multipart(
            session.file_key, session.upload_id, parts, session.content_type
        )

        self.store.delete(file_id)
        self.store.forget_key(file_id)

        self.audit.log_operation(
            "complete",
            file_id=file_id,
            key=session.file_key,
            provider=self.backend.provider,
            details={"parts": len(parts)},
        )
        return CompleteResponse(key=session.file_key, url=self.backend.public_url(session.file_key))

    def abort(
        self,
        file_id: str,
        *,
        upload_id: str | None = None,
        file_key: str | None = None,
    ) -> AbortResponse:
        """Cancel ``file_id`` and clean up whatever is known about it.

        Valid in any state and idempotent. Cleanup failures are logged and
        never fail the call.
        """
        self.store.mark_cancelled(file_id)

        session = self.store.get(file_id)
        if session is not None:
            target_key, target_upload_id = session.file_key, session.upload_id
        else:
            target_key = file_key or self.store.lookup_key(file_id)
            target_upload_id = upload_id

        if session is None and not target_key:
            self.audit.log_operation("abort", file_id=file_id, provider=self.backend.provider)
            return AbortResponse(message=ABORT_MARKED)

        if target_key and target_upload_id:
            self._abort_quietly(target_key, target_upload_id)

        if target_key:
            try:
                self.backend.delete_object(target_key)
            except ChunkRelayError as e:
                logger.error("Error deleting %s during abort: %s", target_key, e)

        self.store.delete(file_id)
        self.store.forget_key(file_id)

        self.audit.log_operation(
            "abort", file_id=file_id, key=target_key, provider=self.backend.provider
        )
        return AbortResponse(message=ABORT_CLEANED)

    def _abort_quietly(self, key: str, upload_id: str) -> None:
        try:
            self.backend.abort_multipart(key, upload_id)
        except ChunkRelayError as e:
            logger.error("Error aborting multipart upload %s for %s: %s", upload_id, key, e)
