"""Chunked upload transport for chunkrelay.

- Chunk planning and batching helpers (``common``)
- Windowed parallel chunk dispatch with retry (``chunks``)

The dispatcher is an internal detail. Use ``UploadScheduler`` from
``chunkrelay.services.scheduler`` as the public API.
"""

from chunkrelay.uploaders.common import (
    ChunkRange,
    collect_files,
    compute_backoff,
    count_chunks,
    plan_chunks,
    progress_percent,
    split_into_batches,
)
from chunkrelay.uploaders.constants import (
    CHUNK_MAX_ATTEMPTS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_PARALLEL_CHUNKS,
    DEFAULT_UPLOAD_CONCURRENCY,
    NETWORK_PRESETS,
    STATUS_POLL_INTERVAL,
)

# The dispatcher imports the HTTP client; import it from its module:
# from chunkrelay.uploaders.chunks import ChunkDispatcher

__all__ = [
    # Constants
    "CHUNK_MAX_ATTEMPTS",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_PARALLEL_CHUNKS",
    "DEFAULT_UPLOAD_CONCURRENCY",
    "NETWORK_PRESETS",
    "STATUS_POLL_INTERVAL",
    # Common utilities
    "ChunkRange",
    "collect_files",
    "compute_backoff",
    "count_chunks",
    "plan_chunks",
    "progress_percent",
    "split_into_batches",
]
