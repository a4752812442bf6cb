"""Shared constants for the chunked uploader.

Defaults match the ``medium`` network preset. Use ``chunkrelay network probe``
or ``chunkrelay config preset`` to pick settings for faster or slower links.
"""

from chunkrelay.core.timeouts import CHUNK_REQUEST_TIMEOUT_SECONDS

MIB = 1024 * 1024

# =============================================================================
# Transfer Defaults
# =============================================================================

DEFAULT_CHUNK_SIZE = 5 * MIB

# Chunks in flight per file
DEFAULT_MAX_PARALLEL_CHUNKS = 3

# Files uploading at once (one batch)
DEFAULT_UPLOAD_CONCURRENCY = 3

DEFAULT_CHUNK_TIMEOUT = CHUNK_REQUEST_TIMEOUT_SECONDS

# =============================================================================
# Chunk Retry
# =============================================================================

# Attempts per chunk, including the first one
CHUNK_MAX_ATTEMPTS = 3

# Backoff after failed attempt n: min(base * 2**n, cap) milliseconds
CHUNK_BACKOFF_BASE_MS = 1000
CHUNK_BACKOFF_CAP_MS = 10000

# Server-side cancellation is polled on every Nth chunk index
STATUS_POLL_INTERVAL = 5

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# =============================================================================
# Network Presets
# =============================================================================

PRESET_AUTO = "auto"

# name -> (chunk_size, max_parallel_chunks, upload_concurrency)
NETWORK_PRESETS: dict[str, tuple[int, int, int]] = {
    "slow": (2 * MIB, 2, 1),
    "medium": (5 * MIB, 3, 3),
    "fast": (10 * MIB, 5, 5),
    "ultrafast": (20 * MIB, 10, 8),
}

DEFAULT_PRESET = "medium"

# Probe payload and repetitions
PROBE_PAYLOAD_KB = 200
PROBE_ITERATIONS = 3

# Auto mode re-probes when the last result is older than this
AUTO_PROBE_INTERVAL_SECONDS = 300

# Warn when chunk_size * parallel chunks * concurrency exceeds this
HIGH_MEMORY_THRESHOLD = 150 * MIB
