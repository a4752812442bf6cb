"""HTTP routes of the relay."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from chunkrelay.core.exceptions import (
    StorageBackendError,
    UploadCancelledError,
    UploadRejectedError,
)
from chunkrelay.models.protocol import (
    AuthRequest,
    AuthResponse,
    ErrorResponse,
    HealthResponse,
    NetworkTestResponse,
    UploadChunkRequest,
)
from chunkrelay.server.auth import TokenRegistry, verify_secret
from chunkrelay.server.manager import MultipartSessionManager
from chunkrelay.server.settings import ServerSettings

logger = logging.getLogger(__name__)
router = APIRouter(tags=["relay"])

MIB = 1024 * 1024


# =============================================================================
# Dependencies
# =============================================================================


def get_manager(request: Request) -> MultipartSessionManager:
    return request.app.state.manager


def get_server_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_tokens(request: Request) -> TokenRegistry:
    return request.app.state.tokens


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return None


def require_token(
    request: Request,
    settings: ServerSettings = Depends(get_server_settings),
    tokens: TokenRegistry = Depends(get_tokens),
) -> None:
    """Reject requests without a valid bearer token when a secret is configured."""
    if not settings.app_secret_key:
        return
    token = _extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
        )
    if not tokens.is_valid(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def _error(status_code: int, message: str, *, cancelled: bool | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, cancelled=cancelled).to_dict(),
    )


# =============================================================================
# Upload Protocol
# =============================================================================


@router.post("/upload-chunk", dependencies=[Depends(require_token)])
def upload_chunk(
    body: UploadChunkRequest,
    manager: MultipartSessionManager = Depends(get_manager),
):
    """Single entry point for initialize, status, upload, complete and abort."""
    try:
        result = manager.handle(body)
    except UploadCancelledError:
        return _error(status.HTTP_409_CONFLICT, "Upload was cancelled", cancelled=True)
    except UploadRejectedError as e:
        return _error(e.status_code, e.reason)
    except StorageBackendError as e:
        logger.error("Upload error (%s %s): %s", body.action, body.file_id, e)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

    return result.to_dict()


# =============================================================================
# Network Probe
# =============================================================================


@router.post("/network-test")
async def network_test(
    request: Request,
    settings: ServerSettings = Depends(get_server_settings),
):
    """Accept a raw payload, hold it briefly, and report its size."""
    body = await request.body()
    if not body:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "No content provided"},
        )

    await asyncio.sleep(settings.probe_delay_ms / 1000)

    return NetworkTestResponse(
        received=len(body),
        received_mb=round(len(body) / MIB, 2),
        timestamp=datetime.now(timezone.utc).isoformat(),
        delay_ms=settings.probe_delay_ms,
    ).to_dict()


# =============================================================================
# Auth and Health
# =============================================================================


@router.post("/auth")
def authenticate(
    body: AuthRequest,
    request: Request,
    settings: ServerSettings = Depends(get_server_settings),
    tokens: TokenRegistry = Depends(get_tokens),
):
    """Exchange the shared secret for a bearer token."""
    if not body.secret_key:
        return JSONResponse(status_code=400, content={"message": "Secret key is required"})

    if not settings.app_secret_key:
        return JSONResponse(status_code=500, content={"message": "Server configuration error"})

    if not verify_secret(body.secret_key, settings.app_secret_key):
        host = request.client.host if request.client else "unknown"
        logger.warning("Rejected authentication attempt from %s", host)
        return JSONResponse(status_code=401, content={"message": "Invalid secret key"})

    return AuthResponse(message="Authentication successful", token=tokens.issue()).to_dict()


@router.get("/health")
def health(manager: MultipartSessionManager = Depends(get_manager)):
    """Report provider, bucket and whether the bucket is reachable."""
    accessible = manager.backend.check_access()
    return HealthResponse(
        status="healthy" if accessible else "degraded",
        provider=manager.backend.provider,
        bucket=manager.backend.bucket,
        bucket_accessible=accessible,
    ).to_dict()
