"""Object key generation for uploaded files."""

from __future__ import annotations

import re
import uuid
from datetime import datetime

KEY_PREFIX = "uploads"
FALLBACK_NAME = "file"

_UNSAFE_CHARS = re.compile(r"[^\w\s.-]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")


def sanitize_file_name(name: str) -> str:
    """Make a client-supplied name safe for use in an object key.

    Characters outside word characters, whitespace, ``.`` and ``-`` are
    removed, whitespace runs become a single ``-``, and an empty result
    becomes ``file``.
    """
    cleaned = _UNSAFE_CHARS.sub("", name or "")
    cleaned = _WHITESPACE.sub("-", cleaned)
    return cleaned or FALLBACK_NAME


def generate_file_key(file_name: str, now: datetime | None = None) -> str:
    """Build ``uploads/YYYY/MM/DD/<8 hex>-<sanitized name>``."""
    now = now or datetime.now()
    return (
        f"{KEY_PREFIX}/{now:%Y/%m/%d}/{uuid.uuid4().hex[:8]}-{sanitize_file_name(file_name)}"
    )
