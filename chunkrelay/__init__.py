"""chunkrelay - chunked, cancellable uploads to object storage.

This package provides both halves of the transfer:
- A command-line client that splits files into chunks and sends them in
  parallel windows with retry and cancellation
- A relay server that turns those chunks into S3 or GCS multipart uploads
"""

__version__ = "0.1.0"

from chunkrelay.core.client import RelayClient
from chunkrelay.core.config import Config, Profile, TransferSettings
from chunkrelay.core.exceptions import (
    AuthenticationError,
    ChunkRelayError,
    ConfigurationError,
    ConnectionError,
    NetworkError,
    UploadCancelledError,
    ValidationError,
)

__all__ = [
    "__version__",
    "RelayClient",
    "Config",
    "Profile",
    "TransferSettings",
    "ChunkRelayError",
    "AuthenticationError",
    "ConfigurationError",
    "ConnectionError",
    "NetworkError",
    "UploadCancelledError",
    "ValidationError",
]
