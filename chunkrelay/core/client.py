"""HTTP client for the chunkrelay server.

Wraps the action protocol of ``/api/upload-chunk`` and the auxiliary
endpoints. Each call is a single attempt; retry policy for chunk transfers
lives in :mod:`chunkrelay.uploaders.chunks`.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from chunkrelay.core.exceptions import (
    AuthenticationError,
    NetworkError,
    RequestTimeoutError,
    ServerUnreachableError,
    SessionNotFoundError,
    UploadCancelledError,
    UploadRejectedError,
)
from chunkrelay.core.timeouts import CHUNK_REQUEST_TIMEOUT_SECONDS, DEFAULT_HTTP_TIMEOUT_SECONDS
from chunkrelay.core.validation import validate_server_url
from chunkrelay.models.protocol import (
    AbortResponse,
    ChunkAction,
    ChunkResponse,
    CompleteResponse,
    InitializeResponse,
    NetworkTestResponse,
    StatusResponse,
    UploadChunkRequest,
)
from chunkrelay.uploaders.constants import RETRYABLE_STATUS_CODES

# =============================================================================
# Constants
# =============================================================================

UPLOAD_CHUNK_PATH = "/api/upload-chunk"
NETWORK_TEST_PATH = "/api/network-test"
AUTH_PATH = "/api/auth"
HEALTH_PATH = "/api/health"


def is_transient_error(exc: BaseException) -> bool:
    """Check whether an error may succeed on a later attempt.

    Transport failures, timeouts, 5xx and 429 answers are transient. A
    missing session, a cancellation and other 4xx answers are not.
    """
    return isinstance(exc, (NetworkError, ServerUnreachableError, RequestTimeoutError))


# =============================================================================
# RelayClient
# =============================================================================


@dataclass
class RelayClient:
    """HTTP client for one relay server."""

    base_url: str
    token: str | None = None
    timeout: int = DEFAULT_HTTP_TIMEOUT_SECONDS
    chunk_timeout: float = CHUNK_REQUEST_TIMEOUT_SECONDS
    verify_ssl: bool = True
    transport: httpx.BaseTransport | None = field(default=None, repr=False)
    _client: httpx.Client | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.base_url = validate_server_url(self.base_url)

    # =========================================================================
    # Client Management
    # =========================================================================

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self.transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> RelayClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # HTTP Plumbing
    # =========================================================================

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send one request and map transport failures to chunkrelay errors."""
        client = self._get_client()
        request_timeout = timeout or self.timeout
        all_headers = {**self._headers(), **(headers or {})}

        try:
            return client.request(
                method,
                path,
                json=json,
                content=content,
                headers=all_headers,
                timeout=request_timeout,
            )
        except httpx.ConnectError as e:
            raise ServerUnreachableError(self.base_url) from e
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{self.base_url}{path}", request_timeout) from e
        except httpx.TransportError as e:
            raise NetworkError(self.base_url, str(e)) from e

    @staticmethod
    def _error_reason(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text.strip() or resp.reason_phrase
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body.get("detail") or body)
        return str(body)

    def _action(
        self,
        request: UploadChunkRequest,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """POST one upload-chunk action and return the decoded JSON body.

        Raises:
            UploadCancelledError: On a 409 or a ``cancelled: true`` payload.
            SessionNotFoundError: On 404.
            AuthenticationError: On 401/403.
            NetworkError: On 5xx and 429 answers (transient).
            UploadRejectedError: On any other non-2xx answer.
        """
        action = request.action
        resp = self._send("POST", UPLOAD_CHUNK_PATH, json=request.to_dict(), timeout=timeout)

        if resp.status_code == 409:
            raise UploadCancelledError(request.file_id)
        if resp.status_code == 404:
            raise SessionNotFoundError(action, request.file_id)
        if resp.status_code in (401, 403):
            raise AuthenticationError(self.base_url, self._error_reason(resp))
        if resp.status_code in RETRYABLE_STATUS_CODES or resp.status_code >= 500:
            reason = f"HTTP {resp.status_code}: {self._error_reason(resp)}"
            raise NetworkError(self.base_url, reason)
        if resp.status_code >= 400:
            raise UploadRejectedError(
                action, resp.status_code, self._error_reason(resp), file_id=request.file_id
            )

        data = resp.json()
        if data.get("cancelled") and action != ChunkAction.STATUS.value:
            raise UploadCancelledError(request.file_id)
        return data

    # =========================================================================
    # Upload Actions
    # =========================================================================

    def initialize(self, file_id: str, file_name: str, file_type: str) -> InitializeResponse:
        """Open a multipart session for a file."""
        data = self._action(
            UploadChunkRequest(
                action=ChunkAction.INITIALIZE.value,
                file_id=file_id,
                file_name=file_name,
                file_type=file_type,
            )
        )
        return InitializeResponse.model_validate(data)

    def status(self, file_id: str) -> StatusResponse:
        """Ask the relay whether a file id has been cancelled."""
        data = self._action(UploadChunkRequest(action=ChunkAction.STATUS.value, file_id=file_id))
        return StatusResponse.model_validate(data)

    def upload_chunk(
        self,
        file_id: str,
        *,
        upload_id: str,
        file_key: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
    ) -> ChunkResponse:
        """Send one chunk (base64 encoded) with the chunk timeout."""
        request = UploadChunkRequest(
            action=ChunkAction.UPLOAD.value,
            file_id=file_id,
            upload_id=upload_id,
            file_key=file_key,
            current_chunk=chunk_index,
            total_chunks=total_chunks,
            chunk_data=base64.b64encode(data).decode("ascii"),
        )
        return ChunkResponse.model_validate(self._action(request, timeout=self.chunk_timeout))

    def complete(self, file_id: str, *, upload_id: str, file_key: str) -> CompleteResponse:
        """Finalize the multipart session into one object."""
        data = self._action(
            UploadChunkRequest(
                action=ChunkAction.COMPLETE.value,
                file_id=file_id,
                upload_id=upload_id,
                file_key=file_key,
            )
        )
        return CompleteResponse.model_validate(data)

    def abort(
        self,
        file_id: str,
        *,
        upload_id: str | None = None,
        file_key: str | None = None,
    ) -> AbortResponse:
        """Cancel a file on the relay and clean up its partial data."""
        data = self._action(
            UploadChunkRequest(
                action=ChunkAction.ABORT.value,
                file_id=file_id,
                upload_id=upload_id,
                file_key=file_key,
            )
        )
        return AbortResponse.model_validate(data)

    # =========================================================================
    # Auxiliary Endpoints
    # =========================================================================

    def network_test(self, payload: bytes) -> NetworkTestResponse:
        """POST a raw payload to the probe endpoint."""
        resp = self._send(
            "POST",
            NETWORK_TEST_PATH,
            content=payload,
            headers={"Content-Type": "application/octet-stream"},
        )
        if resp.status_code >= 400:
            reason = f"HTTP {resp.status_code}: {self._error_reason(resp)}"
            raise NetworkError(self.base_url, reason)
        return NetworkTestResponse.model_validate(resp.json())

    def authenticate(self, secret_key: str) -> str:
        """Exchange the shared secret for a bearer token.

        Returns:
            Bearer token; also stored on the client.

        Raises:
            AuthenticationError: If the relay rejects the secret.
        """
        resp = self._send("POST", AUTH_PATH, json={"secretKey": secret_key})
        if resp.status_code != 200:
            raise AuthenticationError(self.base_url, self._error_reason(resp))

        self.token = resp.json()["token"]
        return self.token

    def health(self) -> dict[str, Any]:
        """Check relay health and measure latency.

        Returns:
            Health payload plus ``latency_ms``.
        """
        start = time.time()
        resp = self._send("GET", HEALTH_PATH)
        latency = int((time.time() - start) * 1000)
        if resp.status_code >= 400:
            raise NetworkError(self.base_url, f"HTTP {resp.status_code}")

        return {"url": self.base_url, **resp.json(), "latency_ms": latency}
