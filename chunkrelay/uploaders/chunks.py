"""Parallel chunk dispatch for a single file.

Chunks are sent in windows of ``max_parallel_chunks``. A window fully
settles before the next one starts, so at most one window of chunk bytes is
held in memory per file. Each chunk gets a bounded number of attempts with
exponential backoff; only transient errors are retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from chunkrelay.core.client import RelayClient, is_transient_error
from chunkrelay.core.exceptions import ChunkRelayError, ChunkUploadError, UploadCancelledError
from chunkrelay.models.file import CancellationToken, UploadableFile
from chunkrelay.models.progress import ChunkProgress
from chunkrelay.uploaders.common import (
    ChunkRange,
    compute_backoff,
    plan_chunks,
    split_into_batches,
)
from chunkrelay.uploaders.constants import (
    CHUNK_MAX_ATTEMPTS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_PARALLEL_CHUNKS,
    STATUS_POLL_INTERVAL,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass
class ChunkTarget:
    """Server-side handles for the file being dispatched."""

    file_id: str
    upload_id: str
    file_key: str


class ChunkDispatcher:
    """Sends the chunks of one file with windowed parallelism and retry."""

    def __init__(
        self,
        client: RelayClient,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_parallel_chunks: int = DEFAULT_MAX_PARALLEL_CHUNKS,
        max_attempts: int = CHUNK_MAX_ATTEMPTS,
        poll_interval: int = STATUS_POLL_INTERVAL,
        backoff: Callable[[int], float] = compute_backoff,
    ):
        """Initialize the dispatcher.

        Args:
            client: Relay client used for ``upload`` and ``status`` actions.
            chunk_size: Chunk size in bytes.
            max_parallel_chunks: Window width.
            max_attempts: Attempts per chunk, including the first.
            poll_interval: Poll server status on chunk indices divisible by this.
            backoff: Maps the number of failed attempts so far to a delay in seconds.
        """
        self.client = client
        self.chunk_size = chunk_size
        self.max_parallel_chunks = max_parallel_chunks
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self.backoff = backoff

    # =========================================================================
    # Public API
    # =========================================================================

    def dispatch(
        self,
        file: UploadableFile,
        target: ChunkTarget,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
    ) -> ChunkProgress:
        """Upload every chunk of ``file``.

        Args:
            file: File to read chunks from.
            target: Upload id and key returned by ``initialize``.
            token: Cancellation token of the file.
            on_progress: Called with the new percentage after each chunk.

        Returns:
            Final chunk progress.

        Raises:
            UploadCancelledError: If the file was cancelled locally or on the relay.
            ChunkUploadError: If a chunk exhausted its attempts.
            ChunkRelayError: On a non-transient relay error.
        """
        chunks = plan_chunks(file.size, self.chunk_size)
        progress = ChunkProgress(file_id=file.id, total_chunks=len(chunks))
        if not chunks:
            return progress

        windows = split_into_batches(chunks, self.max_parallel_chunks)
        logger.debug(
            "Dispatching %d chunks of %s in %d windows", len(chunks), file.name, len(windows)
        )

        with ThreadPoolExecutor(
            max_workers=self.max_parallel_chunks,
            thread_name_prefix=f"chunks-{file.id[:8]}",
        ) as pool:
            for window in windows:
                if token.cancelled:
                    raise UploadCancelledError(file.id)
                self._run_window(
                    pool, file, window, len(chunks), target, token, progress, on_progress
                )

        return progress

    # =========================================================================
    # Windows and Chunks
    # =========================================================================

    def _run_window(
        self,
        pool: ThreadPoolExecutor,
        file: UploadableFile,
        window: list[ChunkRange],
        total: int,
        target: ChunkTarget,
        token: CancellationToken,
        progress: ChunkProgress,
        on_progress: ProgressCallback | None,
    ) -> None:
        futures = [
            pool.submit(self._send_chunk, file, chunk, total, target, token) for chunk in window
        ]

        errors: list[Exception] = []
        for future in as_completed(futures):
            try:
                future.result()
            except UploadCancelledError as e:
                token.cancel()
                errors.append(e)
                continue
            except ChunkRelayError as e:
                errors.append(e)
                continue

            progress.completed_chunks += 1
            if on_progress is not None:
                on_progress(progress.percent)

        if errors:
            # Cancellation wins over any sibling failure in the same window
            for error in errors:
                if isinstance(error, UploadCancelledError):
                    raise error
            raise errors[0]

    def _send_chunk(
        self,
        file: UploadableFile,
        chunk: ChunkRange,
        total: int,
        target: ChunkTarget,
        token: CancellationToken,
    ) -> None:
        data = file.read_range(chunk.start, chunk.end)
        last_error: ChunkRelayError | None = None

        for attempt in range(self.max_attempts):
            if token.cancelled:
                raise UploadCancelledError(file.id)

            if chunk.index % self.poll_interval == 0 and attempt % 2 == 0:
                self._poll_status(target.file_id, token)

            try:
                self.client.upload_chunk(
                    target.file_id,
                    upload_id=target.upload_id,
                    file_key=target.file_key,
                    chunk_index=chunk.index,
                    total_chunks=total,
                    data=data,
                )
                return
            except UploadCancelledError:
                raise
            except ChunkRelayError as e:
                if not is_transient_error(e):
                    raise
                last_error = e

            if attempt < self.max_attempts - 1:
                delay = self.backoff(attempt + 1)
                logger.warning(
                    "Chunk %d of %s failed on attempt %d/%d (%s), retrying in %.1fs",
                    chunk.index,
                    file.name,
                    attempt + 1,
                    self.max_attempts,
                    last_error,
                    delay,
                )
                if token.wait(delay):
                    raise UploadCancelledError(file.id)

        raise ChunkUploadError(file.id, chunk.index, self.max_attempts, last_error)

    def _poll_status(self, file_id: str, token: CancellationToken) -> None:
        """Check the relay's cancellation flag; a failing poll is ignored."""
        try:
            cancelled = self.client.status(file_id).cancelled
        except UploadCancelledError:
            cancelled = True
        except ChunkRelayError as e:
            logger.debug("Status poll for %s failed: %s", file_id, e)
            return

        if cancelled:
            token.cancel()
            raise UploadCancelledError(file_id)


__all__ = ["ChunkDispatcher", "ChunkTarget", "ProgressCallback"]
