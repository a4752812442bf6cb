"""Progress and summary models for upload runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

MIB = 1024 * 1024


@dataclass
class ChunkProgress:
    """Progress of one file's chunk dispatch."""

    file_id: str
    completed_chunks: int = 0
    total_chunks: int = 0

    @property
    def percent(self) -> int:
        """Whole-number completion percentage, rounded down."""
        if self.total_chunks == 0:
            return 100
        return (self.completed_chunks * 100) // self.total_chunks


@dataclass
class OperationResult:
    """Generic operation result."""

    success: bool
    total: int
    succeeded: int
    failed: int
    duration: float
    errors: List[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate percentage."""
        if self.total == 0:
            return 100.0
        return (self.succeeded / self.total) * 100


@dataclass
class UploadSummary(OperationResult):
    """Result of one ``start_upload`` run."""

    cancelled: int = 0
    total_bytes: int = 0
    batches_total: int = 0
    completed_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    cancelled_ids: List[str] = field(default_factory=list)

    @property
    def total_size_mb(self) -> float:
        return self.total_bytes / MIB

    @property
    def throughput_mbps(self) -> float:
        """Upload throughput in MB/s of completed bytes."""
        if self.duration == 0:
            return 0.0
        return self.total_size_mb / self.duration

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "batches": self.batches_total,
            "total_size_mb": round(self.total_size_mb, 2),
            "duration_s": round(self.duration, 2),
            "throughput_mbps": round(self.throughput_mbps, 2),
            "errors": self.errors,
        }
