"""Input validation helpers for chunkrelay."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from chunkrelay.core.exceptions import InvalidURLError, ValidationError

MAX_CHUNK_SIZE_MB = 100
MAX_PARALLEL_CHUNKS = 32
MAX_UPLOAD_CONCURRENCY = 32


def validate_server_url(url: str) -> str:
    """Validate and normalize a relay server URL.

    Args:
        url: URL to validate.

    Returns:
        URL without trailing slash.

    Raises:
        InvalidURLError: If the URL is missing a scheme or host.
    """
    if not url or not url.strip():
        raise InvalidURLError(url or "", "URL is empty")

    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(url, "scheme must be http or https")
    if not parsed.netloc:
        raise InvalidURLError(url, "missing host")

    return url.rstrip("/")


def validate_positive_int(value: int, field: str, maximum: int | None = None) -> int:
    """Validate a positive integer setting.

    Raises:
        ValidationError: If value is not in ``1..maximum``.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field, value=value)
    if value < 1:
        raise ValidationError(f"{field} must be at least 1", field=field, value=value)
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be at most {maximum}", field=field, value=value)
    return value


def validate_chunk_size_mb(value: int) -> int:
    """Validate a chunk size given in MiB."""
    return validate_positive_int(value, "chunk_size_mb", MAX_CHUNK_SIZE_MB)


def validate_parallel_chunks(value: int) -> int:
    """Validate the parallel chunk window width."""
    return validate_positive_int(value, "max_parallel_chunks", MAX_PARALLEL_CHUNKS)


def validate_upload_concurrency(value: int) -> int:
    """Validate the file-level concurrency."""
    return validate_positive_int(value, "upload_concurrency", MAX_UPLOAD_CONCURRENCY)


def validate_path_exists(path: str | Path) -> Path:
    """Validate that a local path exists.

    Raises:
        ValidationError: If the path does not exist.
    """
    p = Path(path).expanduser()
    if not p.exists():
        raise ValidationError(f"Path does not exist: {p}", field="path", value=str(p))
    return p
