"""Client-side file records and the upload status state machine."""

from __future__ import annotations

import mimetypes
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from chunkrelay.core.exceptions import InvalidTransitionError

DEFAULT_MIME_TYPE = "application/octet-stream"


class FileStatus(str, Enum):
    """Lifecycle status of a file in the upload queue."""

    PENDING = "pending"
    UPLOADING = "uploading"
    # Reserved; no transition leads here
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({FileStatus.COMPLETED, FileStatus.CANCELLED})

ALLOWED_TRANSITIONS: dict[FileStatus, frozenset[FileStatus]] = {
    FileStatus.PENDING: frozenset({FileStatus.UPLOADING, FileStatus.CANCELLED}),
    FileStatus.UPLOADING: frozenset(
        {
            FileStatus.UPLOADING,
            FileStatus.COMPLETED,
            FileStatus.FAILED,
            FileStatus.CANCELLED,
        }
    ),
    FileStatus.FAILED: frozenset({FileStatus.PENDING, FileStatus.CANCELLED}),
    FileStatus.PAUSED: frozenset(),
    FileStatus.COMPLETED: frozenset(),
    FileStatus.CANCELLED: frozenset(),
}


def can_transition(current: FileStatus, target: FileStatus) -> bool:
    """Check whether ``current -> target`` is an allowed status change."""
    return target in ALLOWED_TRANSITIONS[current]


def validate_transition(file_id: str, current: FileStatus, target: FileStatus) -> None:
    """Ensure a status change is allowed.

    Args:
        file_id: File being updated (used in the error).
        current: Current status.
        target: Requested status.

    Raises:
        InvalidTransitionError: If the state machine forbids the change.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(file_id, current.value, target.value)


# =============================================================================
# Cancellation
# =============================================================================


class CancellationToken:
    """Per-file cancellation signal shared by the scheduler and dispatcher.

    Wraps a :class:`threading.Event` so that backoff sleeps can be cut short
    the moment the file is cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True early if cancelled."""
        return self._event.wait(timeout)


# =============================================================================
# UploadableFile
# =============================================================================


@dataclass
class UploadableFile:
    """A local file queued for upload.

    Only :class:`~chunkrelay.services.scheduler.UploadScheduler` mutates
    these records.
    """

    name: str
    size: int
    raw_handle: Path
    mime_type: str = DEFAULT_MIME_TYPE
    last_modified: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: FileStatus = FileStatus.PENDING
    progress: int = 0
    error: Optional[str] = None
    retry_count: int = 0
    added_at: datetime = field(default_factory=datetime.now)
    upload_id: Optional[str] = None
    file_key: Optional[str] = None
    url: Optional[str] = None
    cancel_token: CancellationToken = field(
        default_factory=CancellationToken, repr=False, compare=False
    )

    @classmethod
    def from_path(cls, path: Path, name: str | None = None) -> "UploadableFile":
        """Build a pending record from a file on disk.

        Args:
            path: File to upload.
            name: Logical name; defaults to the file's base name.
        """
        stat = path.stat()
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=name or path.name,
            size=stat.st_size,
            raw_handle=path,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            last_modified=int(stat.st_mtime * 1000),
        )

    @property
    def identity(self) -> tuple[str, int, int]:
        """Key used to suppress duplicate selections."""
        return (self.name, self.size, self.last_modified)

    def read_range(self, start: int, end: int) -> bytes:
        """Read bytes ``[start, end)`` from the source file."""
        with open(self.raw_handle, "rb") as f:
            f.seek(start)
            return f.read(end - start)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "mime_type": self.mime_type,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "retry_count": self.retry_count,
            "file_key": self.file_key,
            "url": self.url,
        }
