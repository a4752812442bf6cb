"""Client-side services for chunkrelay.

Provides the upload scheduler, the network probe and local history/stats.
"""

from __future__ import annotations

from .base import BaseService
from .history import HistoryEntry, HistoryStore, StatsStore, UploadStats
from .network import NetworkProbe, detect_preset, is_probe_stale, resolve_auto_settings
from .scheduler import UploadScheduler

__all__ = [
    "BaseService",
    "UploadScheduler",
    "NetworkProbe",
    "detect_preset",
    "is_probe_stale",
    "resolve_auto_settings",
    "HistoryStore",
    "HistoryEntry",
    "StatsStore",
    "UploadStats",
]
