"""Upload scheduler: the client-side queue of files.

Owns every :class:`UploadableFile` record and is the only place their
status changes. Files are uploaded in consecutive batches of
``upload_concurrency``; files within a batch run concurrently and each one
is isolated from the failures of its siblings.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from chunkrelay.core.config import TransferSettings
from chunkrelay.core.exceptions import (
    ChunkRelayError,
    SettingsLockedError,
    UploadCancelledError,
    ValidationError,
)
from chunkrelay.core.logging import log_context
from chunkrelay.models.file import FileStatus, UploadableFile, validate_transition
from chunkrelay.models.progress import UploadSummary
from chunkrelay.models.protocol import CompleteResponse
from chunkrelay.services.history import HistoryStore, StatsStore
from chunkrelay.uploaders.chunks import ChunkDispatcher, ChunkTarget
from chunkrelay.uploaders.common import collect_files, compute_backoff, split_into_batches

from .base import BaseService

logger = logging.getLogger(__name__)

FileListener = Callable[[UploadableFile], None]

# Outcome labels returned by _upload_file
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"


class UploadScheduler(BaseService):
    """Queue, batch and track file uploads."""

    def __init__(
        self,
        client,
        settings: TransferSettings | None = None,
        *,
        history: HistoryStore | None = None,
        stats: StatsStore | None = None,
        backoff: Callable[[int], float] = compute_backoff,
        on_update: FileListener | None = None,
    ):
        """Initialize the scheduler.

        Args:
            client: Relay client.
            settings: Transfer settings; defaults to the medium preset values.
            history: Store for completed uploads.
            stats: Store for success/failure totals.
            backoff: Chunk retry backoff, in seconds per failed attempt.
            on_update: Called with a file after each status or progress change.
        """
        super().__init__(client)
        self.settings = settings or TransferSettings()
        self.history = history
        self.stats = stats
        self.backoff = backoff
        self.on_update = on_update
        self._files: dict[str, UploadableFile] = {}
        self._lock = threading.RLock()
        self._uploading = False

    # =========================================================================
    # Queue
    # =========================================================================

    @property
    def files(self) -> list[UploadableFile]:
        """Snapshot of the queue in insertion order."""
        with self._lock:
            return list(self._files.values())

    @property
    def is_uploading(self) -> bool:
        return self._uploading

    def get_file(self, file_id: str) -> UploadableFile | None:
        with self._lock:
            return self._files.get(file_id)

    def prepare_files(self, sources: Iterable[Path | tuple[Path, str]]) -> list[UploadableFile]:
        """Add local files to the queue as ``pending`` records.

        A source whose name, size and modification time match a file already
        in the queue (or an earlier source of the same call) is skipped.

        Args:
            sources: Paths, or ``(path, logical_name)`` pairs.

        Returns:
            The newly added records.
        """
        added: list[UploadableFile] = []
        with self._lock:
            seen = {f.identity for f in self._files.values()}
            for source in sources:
                path, name = source if isinstance(source, tuple) else (source, None)
                record = UploadableFile.from_path(Path(path), name)
                if record.identity in seen:
                    logger.debug("Skipping duplicate selection %s", record.name)
                    continue
                seen.add(record.identity)
                self._files[record.id] = record
                added.append(record)
        return added

    def process_folder(self, directory: Path) -> int:
        """Queue every file under ``directory``, named by relative path.

        Returns:
            Number of files found (duplicates included).
        """
        found = collect_files(Path(directory))
        self.prepare_files(found)
        return len(found)

    def remove_file(self, file_id: str) -> bool:
        """Drop a file that is not currently uploading."""
        with self._lock:
            record = self._files.get(file_id)
            if record is None or record.status == FileStatus.UPLOADING:
                return False
            del self._files[file_id]
            return True

    def clear_files(self) -> None:
        """Empty the queue.

        Raises:
            SettingsLockedError: If an upload is running.
        """
        with self._lock:
            if self._uploading:
                raise SettingsLockedError()
            self._files.clear()

    def apply_settings(self, settings: TransferSettings) -> None:
        """Replace transfer settings.

        Raises:
            SettingsLockedError: If an upload is running.
        """
        with self._lock:
            if self._uploading:
                raise SettingsLockedError()
            self.settings = settings

    # =========================================================================
    # Status
    # =========================================================================

    def update_file_status(
        self,
        file_id: str,
        status: FileStatus,
        *,
        progress: int | None = None,
        error: str | None = None,
    ) -> UploadableFile:
        """Apply a status change to a file record.

        Args:
            file_id: File to update.
            status: Target status; validated against the state machine.
            progress: New progress; ignored if lower than the current value
                while uploading.
            error: Error message for ``failed``.

        Returns:
            The updated record.

        Raises:
            ValidationError: If the file is unknown.
            InvalidTransitionError: If the transition is not allowed.
        """
        with self._lock:
            record = self._files.get(file_id)
            if record is None:
                raise ValidationError(f"Unknown file: {file_id}", field="file_id", value=file_id)

            validate_transition(file_id, record.status, status)
            previous = record.status
            record.status = status

            if status == FileStatus.UPLOADING:
                if previous != FileStatus.UPLOADING:
                    record.progress = 0
                    record.error = None
                if progress is not None:
                    record.progress = max(record.progress, min(progress, 100))
            elif status == FileStatus.PENDING:
                record.progress = 0
                record.error = None
            elif status == FileStatus.COMPLETED:
                record.progress = 100
            elif status == FileStatus.FAILED:
                record.retry_count += 1
                record.error = error
            elif status == FileStatus.CANCELLED:
                record.cancel_token.cancel()

        if self.on_update is not None:
            self.on_update(record)
        return record

    def _report_progress(self, file_id: str, percent: int) -> None:
        # Late chunk completions after a cancel are dropped
        with self._lock:
            record = self._files.get(file_id)
            if record is None or record.status != FileStatus.UPLOADING:
                return
            self.update_file_status(file_id, FileStatus.UPLOADING, progress=percent)

    # =========================================================================
    # Upload
    # =========================================================================

    def start_upload(self) -> UploadSummary | None:
        """Upload every eligible file.

        Eligible files are those neither completed nor uploading; ``failed``
        files go back through ``pending`` and ``cancelled`` files are
        skipped.

        Returns:
            Summary of the run, or None if nothing was eligible or an upload
            is already running.
        """
        with self._lock:
            if self._uploading:
                return None

            eligible = [
                f
                for f in self._files.values()
                if f.status in (FileStatus.PENDING, FileStatus.FAILED)
            ]
            if not eligible:
                return None

            for record in eligible:
                if record.status == FileStatus.FAILED:
                    self.update_file_status(record.id, FileStatus.PENDING)

            self._uploading = True
            settings = self.settings

        start = time.time()
        summary = UploadSummary(
            success=True, total=len(eligible), succeeded=0, failed=0, duration=0
        )
        batches = split_into_batches(eligible, settings.upload_concurrency)
        summary.batches_total = len(batches)

        dispatcher = ChunkDispatcher(
            self.client,
            chunk_size=settings.chunk_size,
            max_parallel_chunks=settings.max_parallel_chunks,
            backoff=self.backoff,
        )

        try:
            for batch_num, batch in enumerate(batches, 1):
                logger.info("Starting batch %d/%d (%d files)", batch_num, len(batches), len(batch))
                with ThreadPoolExecutor(
                    max_workers=len(batch), thread_name_prefix="upload"
                ) as pool:
                    outcomes = list(
                        pool.map(lambda record: self._upload_file(record, dispatcher), batch)
                    )

                for record, outcome in zip(batch, outcomes):
                    if outcome == COMPLETED:
                        summary.succeeded += 1
                        summary.total_bytes += record.size
                        summary.completed_ids.append(record.id)
                    elif outcome == CANCELLED:
                        summary.cancelled += 1
                        summary.cancelled_ids.append(record.id)
                    else:
                        summary.failed += 1
                        summary.failed_ids.append(record.id)
                        summary.errors.append(f"{record.name}: {record.error}")
        finally:
            with self._lock:
                self._uploading = False

        summary.duration = time.time() - start
        summary.success = summary.failed == 0
        return summary

    def _upload_file(self, record: UploadableFile, dispatcher: ChunkDispatcher) -> str:
        """Upload one file end to end; never raises."""
        with self._lock:
            if record.status != FileStatus.PENDING:
                # Cancelled while waiting for its batch
                return CANCELLED if record.status == FileStatus.CANCELLED else FAILED
            self.update_file_status(record.id, FileStatus.UPLOADING, progress=0)

        try:
            with log_context("upload", logger, file=record.name, size=record.size) as ctx:
                result = self._transfer(record, dispatcher)
                if result is None:
                    ctx.outcome = "cancelled"
        except Exception as e:
            with self._lock:
                if record.status == FileStatus.CANCELLED:
                    return CANCELLED
                self.update_file_status(record.id, FileStatus.FAILED, error=str(e))
            if self.stats is not None:
                self.stats.record_failure()
            logger.error("Upload of %s failed: %s", record.name, e)
            return FAILED

        with self._lock:
            if result is None or record.status == FileStatus.CANCELLED:
                if record.status != FileStatus.CANCELLED:
                    self.update_file_status(record.id, FileStatus.CANCELLED)
                return CANCELLED
            record.url = result.url
            record.file_key = result.key
            self.update_file_status(record.id, FileStatus.COMPLETED)

        if self.history is not None:
            self.history.add(record.name, record.size, result.key, result.url)
        if self.stats is not None:
            self.stats.record_success(1, record.size)
        return COMPLETED

    def _transfer(
        self, record: UploadableFile, dispatcher: ChunkDispatcher
    ) -> CompleteResponse | None:
        """Initialize, send every chunk and complete; None once cancelled."""
        token = record.cancel_token
        try:
            init = self.client.initialize(record.id, record.name, record.mime_type)
        except UploadCancelledError:
            return None

        with self._lock:
            record.upload_id = init.upload_id
            record.file_key = init.file_key
            cancelled_during_initialize = token.cancelled

        if cancelled_during_initialize:
            # initialize clears the relay's cancel flag, so the earlier abort
            # may predate this upload; abort again with the known handles
            self._notify_abort(record)
            return None

        try:
            dispatcher.dispatch(
                record,
                ChunkTarget(record.id, init.upload_id, init.file_key),
                token,
                on_progress=lambda pct: self._report_progress(record.id, pct),
            )

            # A cancel that lands after the last window still skips complete
            if token.cancelled:
                return None

            return self.client.complete(
                record.id, upload_id=init.upload_id, file_key=init.file_key
            )
        except UploadCancelledError:
            return None

    # =========================================================================
    # Cancellation and Retry
    # =========================================================================

    def _notify_abort(self, record: UploadableFile) -> None:
        try:
            self.client.abort(record.id, upload_id=record.upload_id, file_key=record.file_key)
        except ChunkRelayError as e:
            logger.warning("Abort notification for %s failed: %s", record.name, e)

    def _mark_cancelled(self, file_id: str) -> UploadableFile | None:
        with self._lock:
            record = self._files.get(file_id)
            if record is None or record.status.is_terminal:
                return None
            self.update_file_status(file_id, FileStatus.CANCELLED)
            return record

    def cancel_upload(self, file_id: str) -> bool:
        """Cancel one file.

        The local status changes first and stays ``cancelled`` whatever the
        relay answers; the abort notification is best effort.

        Returns:
            True if the file was cancelled by this call.
        """
        record = self._mark_cancelled(file_id)
        if record is None:
            return False
        self._notify_abort(record)
        return True

    def cancel_all_uploads(self, *, include_pending: bool = False) -> int:
        """Cancel every uploading file, notifying the relay concurrently.

        Args:
            include_pending: Also cancel files still waiting for their batch.

        Returns:
            Number of files cancelled.
        """
        pending_cancelled = 0
        with self._lock:
            if include_pending:
                for record in list(self._files.values()):
                    if record.status == FileStatus.PENDING and self._mark_cancelled(record.id):
                        pending_cancelled += 1
            targets = [f.id for f in self._files.values() if f.status == FileStatus.UPLOADING]
            cancelled = [r for r in (self._mark_cancelled(fid) for fid in targets) if r]

        if cancelled:
            with ThreadPoolExecutor(
                max_workers=len(cancelled), thread_name_prefix="abort"
            ) as pool:
                list(pool.map(self._notify_abort, cancelled))
        return pending_cancelled + len(cancelled)

    def retry_failed_uploads(self) -> UploadSummary | None:
        """Reset failed files to pending and start a new run."""
        with self._lock:
            if self._uploading:
                return None
            for record in list(self._files.values()):
                if record.status == FileStatus.FAILED:
                    self.update_file_status(record.id, FileStatus.PENDING)
        return self.start_upload()
