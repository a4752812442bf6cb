"""Local upload history and aggregate statistics.

Both stores keep a small JSON document in the config directory. Read errors
fall back to empty history or zeroed statistics.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from chunkrelay.core.config import CONFIG_DIR

logger = logging.getLogger(__name__)

HISTORY_FILE = CONFIG_DIR / "history.json"
STATS_FILE = CONFIG_DIR / "stats.json"
DEFAULT_PAGE_SIZE = 20


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return default


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


# =============================================================================
# History
# =============================================================================


@dataclass
class HistoryEntry:
    """One completed upload."""

    file_name: str
    file_size: int
    upload_date: str
    status: str
    file_key: str
    url: str


class HistoryStore:
    """Newest-first list of completed uploads."""

    def __init__(self, path: Path | None = None):
        self.path = path or HISTORY_FILE
        self._lock = threading.Lock()

    def add(self, file_name: str, file_size: int, file_key: str, url: str) -> HistoryEntry:
        """Record a completed upload."""
        entry = HistoryEntry(
            file_name=file_name,
            file_size=file_size,
            upload_date=datetime.now().isoformat(),
            status="completed",
            file_key=file_key,
            url=url,
        )
        with self._lock:
            entries = _read_json(self.path, [])
            entries.insert(0, asdict(entry))
            _write_json(self.path, entries)
        return entry

    def get_history(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> list[HistoryEntry]:
        """Return one page of history, newest first.

        Args:
            page: One-based page number.
            limit: Entries per page.
        """
        start = max(page - 1, 0) * limit
        entries = _read_json(self.path, [])
        return [HistoryEntry(**item) for item in entries[start : start + limit]]

    def count(self) -> int:
        return len(_read_json(self.path, []))

    def clear(self) -> None:
        with self._lock:
            _write_json(self.path, [])


# =============================================================================
# Statistics
# =============================================================================


@dataclass
class UploadStats:
    total_uploaded: int = 0
    total_size: int = 0
    success_count: int = 0
    failed_count: int = 0
    last_upload_date: Optional[str] = None


class StatsStore:
    """Running totals across upload runs."""

    def __init__(self, path: Path | None = None):
        self.path = path or STATS_FILE
        self._lock = threading.Lock()

    def get(self) -> UploadStats:
        data = _read_json(self.path, {})
        try:
            return UploadStats(**data)
        except TypeError:
            logger.warning("Ignoring malformed stats file %s", self.path)
            return UploadStats()

    def _update(self, **changes: Any) -> UploadStats:
        with self._lock:
            stats = self.get()
            for key, delta in changes.items():
                setattr(stats, key, getattr(stats, key) + delta)
            stats.last_upload_date = datetime.now().isoformat()
            _write_json(self.path, asdict(stats))
            return stats

    def record_success(self, file_count: int, total_size: int) -> UploadStats:
        """Add completed files and their bytes to the totals."""
        return self._update(
            total_uploaded=file_count, total_size=total_size, success_count=file_count
        )

    def record_failure(self, file_count: int = 1) -> UploadStats:
        return self._update(failed_count=file_count)

    def reset(self) -> UploadStats:
        with self._lock:
            stats = UploadStats()
            _write_json(self.path, asdict(stats))
            return stats
