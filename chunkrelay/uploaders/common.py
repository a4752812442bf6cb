"""Common utilities for the chunked uploader."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from chunkrelay.uploaders.constants import CHUNK_BACKOFF_BASE_MS, CHUNK_BACKOFF_CAP_MS

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Chunk Planning
# =============================================================================


@dataclass(frozen=True)
class ChunkRange:
    """Byte range ``[start, end)`` of one chunk."""

    index: int
    start: int
    end: int

    @property
    def part_number(self) -> int:
        """One-based part number used by the object store."""
        return self.index + 1

    @property
    def length(self) -> int:
        return self.end - self.start


def count_chunks(size: int, chunk_size: int) -> int:
    """Number of chunks for a file; zero for an empty file."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return math.ceil(size / chunk_size)


def plan_chunks(size: int, chunk_size: int) -> list[ChunkRange]:
    """Split ``size`` bytes into contiguous chunk ranges.

    The ranges are disjoint, cover ``[0, size)`` exactly, and every range
    except the last is ``chunk_size`` long.

    Args:
        size: File size in bytes.
        chunk_size: Chunk size in bytes.

    Returns:
        Ordered list of chunk ranges (empty for a zero-length file).
    """
    return [
        ChunkRange(index=i, start=i * chunk_size, end=min((i + 1) * chunk_size, size))
        for i in range(count_chunks(size, chunk_size))
    ]


def progress_percent(completed: int, total: int) -> int:
    """Whole-number progress, rounded down."""
    if total <= 0:
        return 100
    return (completed * 100) // total


def compute_backoff(failures: int) -> float:
    """Backoff in seconds once ``failures`` attempts have failed.

    2s after the first failure, then 4s, 8s, capped at 10s.
    """
    return min(CHUNK_BACKOFF_BASE_MS * (2**failures), CHUNK_BACKOFF_CAP_MS) / 1000


# =============================================================================
# File Collection
# =============================================================================


def collect_files(root: Path) -> list[tuple[Path, str]]:
    """Recursively collect regular files under a directory.

    Each file is paired with its logical name: the path relative to the
    parent of ``root``, joined with ``/``. Walking ``photos/`` yields names
    like ``photos/2024/a.jpg``.

    Args:
        root: Directory to walk.

    Returns:
        ``(path, name)`` pairs sorted by name.

    Raises:
        ValueError: If root is not a directory.
    """
    if not root.exists() or not root.is_dir():
        raise ValueError(f"Not a directory: {root}")

    base = root.parent
    found: list[tuple[Path, str]] = []
    for path in root.rglob("*"):
        if not path.is_file():
            continue

        # Broken symlinks
        if path.is_symlink():
            try:
                if not path.resolve().exists():
                    continue
            except (OSError, ValueError):
                continue

        found.append((path, path.relative_to(base).as_posix()))

    return sorted(found, key=lambda item: item[1])


def split_into_batches(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split items into consecutive batches of at most ``batch_size``.

    Args:
        items: Items to split, order preserved.
        batch_size: Maximum items per batch; non-positive means one batch.

    Returns:
        List of batches.
    """
    if not items:
        return []

    if batch_size <= 0:
        return [list(items)]

    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]
