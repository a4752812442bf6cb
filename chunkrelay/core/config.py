"""Configuration management for chunkrelay.

Supports YAML profiles, persisted transfer settings and environment variable
overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

from chunkrelay.core.exceptions import ConfigurationError, ProfileNotFoundError, ValidationError
from chunkrelay.core.timeouts import DEFAULT_HTTP_TIMEOUT_SECONDS
from chunkrelay.core.validation import (
    validate_parallel_chunks,
    validate_positive_int,
    validate_upload_concurrency,
)
from chunkrelay.uploaders.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_PARALLEL_CHUNKS,
    DEFAULT_PRESET,
    DEFAULT_UPLOAD_CONCURRENCY,
    HIGH_MEMORY_THRESHOLD,
    MIB,
    NETWORK_PRESETS,
    PRESET_AUTO,
)

# =============================================================================
# Constants
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "chunkrelay"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

# Environment variable names
ENV_URL = "CHUNKRELAY_URL"
ENV_TOKEN = "CHUNKRELAY_TOKEN"
ENV_PROFILE = "CHUNKRELAY_PROFILE"
ENV_VERIFY_SSL = "CHUNKRELAY_VERIFY_SSL"
ENV_TIMEOUT = "CHUNKRELAY_TIMEOUT"


# =============================================================================
# Profile
# =============================================================================


@dataclass
class Profile:
    """Configuration profile for a relay server."""

    url: str
    verify_ssl: bool = True
    timeout: int = DEFAULT_HTTP_TIMEOUT_SECONDS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "url": self.url,
            "verify_ssl": self.verify_ssl,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        """Create from dictionary."""
        return cls(
            url=data.get("url", ""),
            verify_ssl=data.get("verify_ssl", True),
            timeout=data.get("timeout", DEFAULT_HTTP_TIMEOUT_SECONDS),
        )


# =============================================================================
# Transfer Settings
# =============================================================================


@dataclass
class TransferSettings:
    """Tunable parameters for chunked transfers."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_parallel_chunks: int = DEFAULT_MAX_PARALLEL_CHUNKS
    upload_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY
    network_preset: str = PRESET_AUTO

    def __post_init__(self) -> None:
        validate_positive_int(self.chunk_size, "chunk_size")
        validate_parallel_chunks(self.max_parallel_chunks)
        validate_upload_concurrency(self.upload_concurrency)
        if self.network_preset != PRESET_AUTO and self.network_preset not in NETWORK_PRESETS:
            raise ValidationError(
                f"Unknown network preset: {self.network_preset}",
                field="network_preset",
                value=self.network_preset,
            )

    @classmethod
    def from_preset(cls, preset: str, *, auto: bool = False) -> "TransferSettings":
        """Build settings from a named preset.

        Args:
            preset: Preset name (slow, medium, fast, ultrafast).
            auto: Keep ``auto`` as the selected mode while applying the preset.

        Returns:
            Settings with the preset's chunk size, window and concurrency.
        """
        if preset not in NETWORK_PRESETS:
            raise ValidationError(f"Unknown network preset: {preset}", field="preset", value=preset)
        chunk_size, parallel, concurrency = NETWORK_PRESETS[preset]
        return cls(
            chunk_size=chunk_size,
            max_parallel_chunks=parallel,
            upload_concurrency=concurrency,
            network_preset=PRESET_AUTO if auto else preset,
        )

    @property
    def chunk_size_mb(self) -> float:
        """Return chunk size in MiB."""
        return self.chunk_size / MIB

    @property
    def estimated_memory_bytes(self) -> int:
        """Upper bound of chunk bytes held in memory across all files."""
        return self.chunk_size * self.max_parallel_chunks * self.upload_concurrency

    @property
    def is_high_memory(self) -> bool:
        """Check if the settings may use too much memory."""
        return self.estimated_memory_bytes > HIGH_MEMORY_THRESHOLD

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (chunk size in MiB)."""
        return {
            "chunk_size_mb": self.chunk_size // MIB,
            "max_parallel_chunks": self.max_parallel_chunks,
            "upload_concurrency": self.upload_concurrency,
            "network_preset": self.network_preset,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransferSettings":
        """Create from dictionary."""
        return cls(
            chunk_size=int(data.get("chunk_size_mb", DEFAULT_CHUNK_SIZE // MIB)) * MIB,
            max_parallel_chunks=int(data.get("max_parallel_chunks", DEFAULT_MAX_PARALLEL_CHUNKS)),
            upload_concurrency=int(data.get("upload_concurrency", DEFAULT_UPLOAD_CONCURRENCY)),
            network_preset=data.get("network_preset", PRESET_AUTO),
        )


# =============================================================================
# Network Stats
# =============================================================================


@dataclass
class NetworkStats:
    """Result of the last network probe."""

    upload_speed_mbps: float = 0.0
    rtt_ms: float = 0.0
    detected_preset: str = DEFAULT_PRESET
    last_tested: Optional[datetime] = None

    def age_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds since the probe ran, or None if never tested."""
        if self.last_tested is None:
            return None
        return ((now or datetime.now()) - self.last_tested).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "upload_speed_mbps": round(self.upload_speed_mbps, 2),
            "rtt_ms": round(self.rtt_ms, 1),
            "detected_preset": self.detected_preset,
            "last_tested": self.last_tested.isoformat() if self.last_tested else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NetworkStats":
        """Create from dictionary."""
        last_tested = data.get("last_tested")
        return cls(
            upload_speed_mbps=float(data.get("upload_speed_mbps", 0.0)),
            rtt_ms=float(data.get("rtt_ms", 0.0)),
            detected_preset=data.get("detected_preset", DEFAULT_PRESET),
            last_tested=datetime.fromisoformat(last_tested) if last_tested else None,
        )


# =============================================================================
# Config
# =============================================================================


@dataclass
class Config:
    """Application configuration."""

    default_profile: str = "default"
    output_format: str = "table"
    profiles: dict[str, Profile] = field(default_factory=dict)
    transfer: TransferSettings = field(default_factory=TransferSettings)
    network: NetworkStats = field(default_factory=NetworkStats)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load config from file with environment variable overrides.

        Priority (highest to lowest):
        1. Environment variables
        2. Config file
        3. Defaults

        Args:
            config_path: Optional path to config file.

        Returns:
            Loaded configuration.
        """
        path = config_path or CONFIG_FILE
        config = cls()

        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

                config.default_profile = data.get("default_profile", "default")
                config.output_format = data.get("output_format", "table")

                for name, pdata in data.get("profiles", {}).items():
                    config.profiles[name] = Profile.from_dict(pdata)

                if transfer := data.get("transfer"):
                    config.transfer = TransferSettings.from_dict(transfer)
                if network := data.get("network"):
                    config.network = NetworkStats.from_dict(network)
            except Exception as e:
                raise ConfigurationError(f"Failed to load config: {e}")

        # Environment variable overrides
        if url := os.getenv(ENV_URL):
            verify_ssl = os.getenv(ENV_VERIFY_SSL, "true").lower() in ("true", "1", "yes")
            timeout = int(os.getenv(ENV_TIMEOUT, str(DEFAULT_HTTP_TIMEOUT_SECONDS)))

            config.profiles["default"] = Profile(
                url=url,
                verify_ssl=verify_ssl,
                timeout=timeout,
            )

        if profile := os.getenv(ENV_PROFILE):
            config.default_profile = profile

        return config

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save config to file (excludes secrets).

        Args:
            config_path: Optional path to config file.
        """
        path = config_path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "default_profile": self.default_profile,
            "output_format": self.output_format,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
            "transfer": self.transfer.to_dict(),
            "network": self.network.to_dict(),
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def get_profile(self, name: Optional[str] = None) -> Profile:
        """Get profile by name or default.

        Args:
            name: Profile name. If None, uses default_profile.

        Returns:
            Profile configuration.

        Raises:
            ProfileNotFoundError: If profile doesn't exist.
        """
        name = name or self.default_profile
        if name not in self.profiles:
            raise ProfileNotFoundError(name)
        return self.profiles[name]

    def has_profile(self, name: str) -> bool:
        """Check if profile exists."""
        return name in self.profiles

    def add_profile(
        self,
        name: str,
        url: str,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ) -> Profile:
        """Add or update a profile.

        Args:
            name: Profile name.
            url: Relay server URL.
            verify_ssl: Whether to verify SSL certificates.
            timeout: Request timeout in seconds.

        Returns:
            Created profile.
        """
        profile = Profile(url=url, verify_ssl=verify_ssl, timeout=timeout)
        self.profiles[name] = profile
        return profile

    def set_default_profile(self, name: str) -> None:
        """Set the default profile.

        Raises:
            ProfileNotFoundError: If profile doesn't exist.
        """
        if name not in self.profiles:
            raise ProfileNotFoundError(name)
        self.default_profile = name


def get_token() -> Optional[str]:
    """Get bearer token from environment variable.

    Returns:
        Token if set, None otherwise.
    """
    return os.getenv(ENV_TOKEN)
