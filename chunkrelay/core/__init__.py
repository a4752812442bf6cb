"""Core modules for chunkrelay."""

from chunkrelay.core.auth import AuthManager
from chunkrelay.core.client import RelayClient, is_transient_error
from chunkrelay.core.config import (
    CONFIG_DIR,
    CONFIG_FILE,
    Config,
    NetworkStats,
    Profile,
    TransferSettings,
)
from chunkrelay.core.exceptions import (
    AuthenticationError,
    ChunkRelayError,
    ChunkUploadError,
    ConfigurationError,
    ConnectionError,
    InvalidTransitionError,
    NetworkError,
    OperationError,
    RequestTimeoutError,
    SessionNotFoundError,
    SettingsLockedError,
    StorageBackendError,
    UploadCancelledError,
    UploadError,
    UploadRejectedError,
    ValidationError,
)
from chunkrelay.core.logging import LogContext, get_audit_logger, get_logger, setup_logging
from chunkrelay.core.output import (
    OutputFormat,
    console,
    print_error,
    print_json,
    print_output,
    print_success,
    print_table,
    print_warning,
)
from chunkrelay.core.validation import (
    validate_chunk_size_mb,
    validate_parallel_chunks,
    validate_path_exists,
    validate_server_url,
    validate_upload_concurrency,
)

__all__ = [
    # Exceptions
    "ChunkRelayError",
    "AuthenticationError",
    "ConfigurationError",
    "SettingsLockedError",
    "ConnectionError",
    "NetworkError",
    "RequestTimeoutError",
    "ValidationError",
    "InvalidTransitionError",
    "OperationError",
    "UploadError",
    "ChunkUploadError",
    "UploadRejectedError",
    "SessionNotFoundError",
    "UploadCancelledError",
    "StorageBackendError",
    # Validation
    "validate_server_url",
    "validate_chunk_size_mb",
    "validate_parallel_chunks",
    "validate_upload_concurrency",
    "validate_path_exists",
    # Config
    "Config",
    "Profile",
    "TransferSettings",
    "NetworkStats",
    "CONFIG_DIR",
    "CONFIG_FILE",
    # Client
    "RelayClient",
    "is_transient_error",
    # Auth
    "AuthManager",
    # Output
    "OutputFormat",
    "print_output",
    "print_table",
    "print_json",
    "print_error",
    "print_warning",
    "print_success",
    "console",
    # Logging
    "get_logger",
    "get_audit_logger",
    "setup_logging",
    "LogContext",
]
