"""Request and response models for the relay HTTP protocol.

All bodies are JSON with camelCase keys. The client builds requests with
these models and the server validates incoming bodies against them.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from chunkrelay.models.base import BaseModel


class ChunkAction(str, Enum):
    """Actions accepted by ``POST /api/upload-chunk``."""

    INITIALIZE = "initialize"
    STATUS = "status"
    UPLOAD = "upload"
    COMPLETE = "complete"
    ABORT = "abort"


# =============================================================================
# Requests
# =============================================================================


class UploadChunkRequest(BaseModel):
    """Body of every upload-chunk action.

    Only ``action`` and ``file_id`` are always required; the manager checks
    the fields each action needs.
    """

    action: str
    file_id: str = Field(..., min_length=1)
    file_name: str | None = None
    file_type: str | None = None
    upload_id: str | None = None
    file_key: str | None = None
    current_chunk: int | None = Field(None, ge=0)
    total_chunks: int | None = Field(None, ge=0)
    chunk_data: str | None = Field(None, repr=False)


class AuthRequest(BaseModel):
    """Body of ``POST /api/auth``."""

    secret_key: str | None = None


# =============================================================================
# Responses
# =============================================================================


class InitializeResponse(BaseModel):
    success: bool = True
    upload_id: str
    file_key: str


class StatusResponse(BaseModel):
    success: bool = True
    cancelled: bool = False


class ChunkResponse(BaseModel):
    success: bool = True
    part_number: int
    parts_received: int


class CompleteResponse(BaseModel):
    success: bool = True
    key: str
    url: str


class AbortResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """Error payload; ``cancelled`` is only set for 409 answers."""

    success: bool = False
    error: str
    cancelled: bool | None = None


class NetworkTestResponse(BaseModel):
    success: bool = True
    received: int
    received_mb: float = Field(..., alias="receivedMB")
    timestamp: str
    # Time the relay held the request before answering
    delay_ms: int = 0


class AuthResponse(BaseModel):
    message: str
    token: str


class HealthResponse(BaseModel):
    status: str
    provider: str
    bucket: str
    bucket_accessible: bool
