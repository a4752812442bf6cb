"""Shared timeout defaults for HTTP requests."""

# Control requests (initialize, status, complete, abort, auth, probe)
DEFAULT_HTTP_TIMEOUT_SECONDS = 30

# Per-request ceiling for a single chunk upload. Expiry counts as a transient
# error and goes through the chunk retry path.
CHUNK_REQUEST_TIMEOUT_SECONDS = 120
