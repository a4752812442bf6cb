"""Data models for chunkrelay.

Provides the client file records, wire protocol models and progress summaries.
"""

from __future__ import annotations

from .base import BaseModel
from .file import (
    CancellationToken,
    FileStatus,
    UploadableFile,
    can_transition,
    validate_transition,
)
from .progress import ChunkProgress, OperationResult, UploadSummary
from .protocol import (
    AbortResponse,
    AuthRequest,
    AuthResponse,
    ChunkAction,
    ChunkResponse,
    CompleteResponse,
    ErrorResponse,
    HealthResponse,
    InitializeResponse,
    NetworkTestResponse,
    StatusResponse,
    UploadChunkRequest,
)

__all__ = [
    # Base
    "BaseModel",
    # Files
    "FileStatus",
    "UploadableFile",
    "CancellationToken",
    "can_transition",
    "validate_transition",
    # Protocol
    "ChunkAction",
    "UploadChunkRequest",
    "AuthRequest",
    "InitializeResponse",
    "StatusResponse",
    "ChunkResponse",
    "CompleteResponse",
    "AbortResponse",
    "ErrorResponse",
    "NetworkTestResponse",
    "AuthResponse",
    "HealthResponse",
    # Progress
    "ChunkProgress",
    "OperationResult",
    "UploadSummary",
]
