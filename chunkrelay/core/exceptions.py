"""Exception hierarchy for chunkrelay.

Provides typed exceptions for different failure modes with clear error messages.
"""

from __future__ import annotations

from typing import Any


class ChunkRelayError(Exception):
    """Base exception for all chunkrelay errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ChunkRelayError):
    """Error in configuration (missing, invalid, or malformed)."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ProfileNotFoundError(ConfigurationError):
    """Requested profile does not exist."""

    def __init__(self, profile: str):
        super().__init__(f"Profile not found: {profile}", field="profile", value=profile)
        self.profile = profile


class SettingsLockedError(ConfigurationError):
    """Transfer settings cannot change while an upload is running."""

    def __init__(self) -> None:
        super().__init__("Transfer settings cannot be changed while an upload is in progress")


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(ChunkRelayError):
    """Input validation failed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidURLError(ValidationError):
    """Invalid URL format."""

    def __init__(self, url: str, reason: str = ""):
        msg = f"Invalid URL: {url}"
        if reason:
            msg = f"{msg} - {reason}"
        super().__init__(msg, field="url", value=url)
        self.url = url
        self.reason = reason


class InvalidTransitionError(ValidationError):
    """A file status change that the upload state machine does not allow."""

    def __init__(self, file_id: str, current: str, target: str):
        super().__init__(
            f"Illegal status transition {current} -> {target}",
            field="file_id",
            value=file_id,
        )
        self.file_id = file_id
        self.current = current
        self.target = target


# =============================================================================
# Connection Errors
# =============================================================================


class ConnectionError(ChunkRelayError):
    """Base class for connection-related errors."""

    def __init__(self, message: str, url: str | None = None):
        details = {"url": url} if url else {}
        super().__init__(message, details)
        self.url = url


class NetworkError(ConnectionError):
    """Network-level error (DNS, TCP, TLS) or a retryable server response."""

    def __init__(self, url: str, cause: str | None = None):
        msg = f"Network error connecting to {url}"
        if cause:
            msg = f"{msg}: {cause}"
        super().__init__(msg, url)
        self.cause = cause


class ServerUnreachableError(ConnectionError):
    """Server is not reachable."""

    def __init__(self, url: str):
        super().__init__(f"Server unreachable: {url}", url)


class RequestTimeoutError(ConnectionError):
    """Request timed out."""

    def __init__(self, url: str, timeout: float):
        super().__init__(f"Request timed out after {timeout}s: {url}", url)
        self.timeout = timeout


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthenticationError(ChunkRelayError):
    """Authentication failed."""

    def __init__(self, url: str | None = None, reason: str = ""):
        msg = "Authentication failed"
        if url:
            msg = f"{msg} for {url}"
        if reason:
            msg = f"{msg}: {reason}"
        details = {"url": url} if url else {}
        super().__init__(msg, details)
        self.url = url
        self.reason = reason


# =============================================================================
# Operation Errors
# =============================================================================


class OperationError(ChunkRelayError):
    """Error during an operation."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        full_details = {"operation": operation}
        if details:
            full_details.update(details)
        super().__init__(message, full_details)
        self.operation = operation


class UploadError(OperationError):
    """Error during upload."""

    def __init__(
        self,
        message: str,
        file_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        full_details = details or {}
        if file_id:
            full_details["file_id"] = file_id
        super().__init__("upload", message, full_details)
        self.file_id = file_id


class ChunkUploadError(UploadError):
    """A chunk could not be transferred after all attempts."""

    def __init__(self, file_id: str, chunk_index: int, attempts: int, cause: Exception):
        super().__init__(
            f"Failed to upload chunk {chunk_index} after {attempts} attempts: {cause}",
            file_id=file_id,
            details={"chunk": chunk_index},
        )
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.cause = cause


class UploadRejectedError(UploadError):
    """The relay answered an action with a client error."""

    def __init__(
        self,
        action: str,
        status_code: int,
        reason: str,
        file_id: str | None = None,
    ):
        super().__init__(
            f"{action} rejected with HTTP {status_code}: {reason}",
            file_id=file_id,
            details={"action": action, "status_code": status_code},
        )
        self.action = action
        self.status_code = status_code
        self.reason = reason


class SessionNotFoundError(UploadRejectedError):
    """The relay has no multipart session for the file id."""

    def __init__(self, action: str, file_id: str | None = None):
        super().__init__(action, 404, "Upload session not found", file_id=file_id)


class UploadCancelledError(UploadError):
    """Sentinel raised when a transfer stops because the file was cancelled.

    Never shown to users as a failure; it always resolves to the
    ``cancelled`` status.
    """

    def __init__(self, file_id: str | None = None):
        super().__init__("Upload was cancelled", file_id=file_id)


class StorageBackendError(OperationError):
    """The object store rejected or failed a request."""

    def __init__(
        self,
        provider: str,
        operation: str,
        cause: Exception | str,
        key: str | None = None,
    ):
        details: dict[str, Any] = {"provider": provider}
        if key:
            details["key"] = key
        super().__init__(operation, f"{provider} {operation} failed: {cause}", details)
        self.provider = provider
        self.key = key
