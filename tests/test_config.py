"""Tests for chunkrelay.core.config module."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from chunkrelay.core.config import Config, NetworkStats, Profile, TransferSettings
from chunkrelay.core.exceptions import ConfigurationError, ProfileNotFoundError, ValidationError
from chunkrelay.core.timeouts import DEFAULT_HTTP_TIMEOUT_SECONDS
from chunkrelay.uploaders.constants import MIB

# =============================================================================
# Profile Tests
# =============================================================================


class TestProfile:
    """Tests for Profile dataclass."""

    def test_default_values(self):
        profile = Profile(url="https://relay.example.org")
        assert profile.url == "https://relay.example.org"
        assert profile.verify_ssl is True
        assert profile.timeout == DEFAULT_HTTP_TIMEOUT_SECONDS

    def test_round_trip_dict(self):
        profile = Profile(url="https://relay.example.org", verify_ssl=False, timeout=60)
        assert Profile.from_dict(profile.to_dict()) == profile


# =============================================================================
# TransferSettings Tests
# =============================================================================


class TestTransferSettings:
    """Tests for TransferSettings."""

    def test_defaults_match_medium_preset(self):
        settings = TransferSettings()
        assert settings.chunk_size == 5 * MIB
        assert settings.max_parallel_chunks == 3
        assert settings.upload_concurrency == 3
        assert settings.network_preset == "auto"

    @pytest.mark.parametrize(
        "preset,chunk_mb,parallel,concurrency",
        [
            ("slow", 2, 2, 1),
            ("medium", 5, 3, 3),
            ("fast", 10, 5, 5),
            ("ultrafast", 20, 10, 8),
        ],
    )
    def test_from_preset(self, preset, chunk_mb, parallel, concurrency):
        settings = TransferSettings.from_preset(preset)
        assert settings.chunk_size == chunk_mb * MIB
        assert settings.max_parallel_chunks == parallel
        assert settings.upload_concurrency == concurrency
        assert settings.network_preset == preset

    def test_from_preset_auto_keeps_auto_mode(self):
        settings = TransferSettings.from_preset("fast", auto=True)
        assert settings.network_preset == "auto"
        assert settings.chunk_size == 10 * MIB

    def test_unknown_preset(self):
        with pytest.raises(ValidationError):
            TransferSettings.from_preset("warp")

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            TransferSettings(max_parallel_chunks=0)
        with pytest.raises(ValidationError):
            TransferSettings(network_preset="warp")

    def test_memory_estimate(self):
        settings = TransferSettings.from_preset("ultrafast")
        assert settings.estimated_memory_bytes == 20 * MIB * 10 * 8
        assert settings.is_high_memory is True
        assert TransferSettings().is_high_memory is False

    def test_dict_uses_megabytes(self):
        data = TransferSettings.from_preset("fast").to_dict()
        assert data["chunk_size_mb"] == 10
        assert TransferSettings.from_dict(data).chunk_size == 10 * MIB


# =============================================================================
# NetworkStats Tests
# =============================================================================


class TestNetworkStats:
    """Tests for NetworkStats."""

    def test_age_never_tested(self):
        assert NetworkStats().age_seconds() is None

    def test_age_seconds(self):
        now = datetime(2024, 1, 1, 12, 0, 0)
        stats = NetworkStats(last_tested=now - timedelta(seconds=90))
        assert stats.age_seconds(now) == 90

    def test_round_trip_dict(self):
        stats = NetworkStats(
            upload_speed_mbps=12.5,
            rtt_ms=40.0,
            detected_preset="medium",
            last_tested=datetime(2024, 1, 1, 12, 0, 0),
        )
        assert NetworkStats.from_dict(stats.to_dict()) == stats


# =============================================================================
# Config Tests
# =============================================================================


class TestConfig:
    """Tests for Config class."""

    def test_default_config(self):
        config = Config()
        assert config.default_profile == "default"
        assert config.output_format == "table"
        assert config.profiles == {}

    def test_load_from_yaml(self, temp_dir: Path, sample_config_yaml: str, monkeypatch):
        monkeypatch.delenv("CHUNKRELAY_URL", raising=False)
        monkeypatch.delenv("CHUNKRELAY_PROFILE", raising=False)
        config_path = temp_dir / "config.yaml"
        config_path.write_text(sample_config_yaml)

        config = Config.load(config_path)

        assert config.default_profile == "test"
        assert set(config.profiles) == {"test", "production"}
        assert config.profiles["test"].verify_ssl is False
        assert config.profiles["production"].timeout == 60
        assert config.transfer.chunk_size == 10 * MIB
        assert config.transfer.network_preset == "fast"

    def test_load_missing_file_uses_defaults(self, temp_dir: Path, monkeypatch):
        monkeypatch.delenv("CHUNKRELAY_URL", raising=False)
        monkeypatch.delenv("CHUNKRELAY_PROFILE", raising=False)
        config = Config.load(temp_dir / "missing.yaml")
        assert config.profiles == {}
        assert config.transfer == TransferSettings()

    def test_load_invalid_yaml(self, temp_dir: Path):
        config_path = temp_dir / "config.yaml"
        config_path.write_text("profiles: [unclosed")

        with pytest.raises(ConfigurationError):
            Config.load(config_path)

    def test_env_overrides(self, temp_dir: Path, sample_config_yaml: str, monkeypatch):
        config_path = temp_dir / "config.yaml"
        config_path.write_text(sample_config_yaml)
        monkeypatch.setenv("CHUNKRELAY_URL", "https://env.example.org")
        monkeypatch.setenv("CHUNKRELAY_VERIFY_SSL", "false")
        monkeypatch.setenv("CHUNKRELAY_TIMEOUT", "15")
        monkeypatch.setenv("CHUNKRELAY_PROFILE", "default")

        config = Config.load(config_path)

        assert config.default_profile == "default"
        profile = config.get_profile()
        assert profile.url == "https://env.example.org"
        assert profile.verify_ssl is False
        assert profile.timeout == 15

    def test_save_and_reload(self, temp_dir: Path, monkeypatch):
        monkeypatch.delenv("CHUNKRELAY_URL", raising=False)
        monkeypatch.delenv("CHUNKRELAY_PROFILE", raising=False)
        config_path = temp_dir / "nested" / "config.yaml"

        config = Config()
        config.add_profile("default", "https://relay.example.org", timeout=45)
        config.transfer = TransferSettings.from_preset("slow")
        config.network = NetworkStats(
            upload_speed_mbps=3.0,
            rtt_ms=250.0,
            detected_preset="slow",
            last_tested=datetime(2024, 5, 1, 8, 30),
        )
        config.save(config_path)

        loaded = Config.load(config_path)
        assert loaded.profiles["default"].timeout == 45
        assert loaded.transfer == config.transfer
        assert loaded.network.detected_preset == "slow"
        assert loaded.network.last_tested == datetime(2024, 5, 1, 8, 30)

    def test_get_profile_missing(self):
        with pytest.raises(ProfileNotFoundError):
            Config().get_profile("nope")

    def test_set_default_profile(self):
        config = Config()
        config.add_profile("dev", "https://dev.example.org")
        config.set_default_profile("dev")
        assert config.default_profile == "dev"
        with pytest.raises(ProfileNotFoundError):
            config.set_default_profile("prod")
