"""Network probing and preset selection.

The probe posts a few fixed-size payloads to the relay's network-test
endpoint, derives upload throughput and round-trip time, and maps them to
one of the transfer presets.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from chunkrelay.core.config import Config, NetworkStats, TransferSettings
from chunkrelay.core.exceptions import ChunkRelayError
from chunkrelay.uploaders.constants import (
    AUTO_PROBE_INTERVAL_SECONDS,
    DEFAULT_PRESET,
    PRESET_AUTO,
    PROBE_ITERATIONS,
    PROBE_PAYLOAD_KB,
)

from .base import BaseService

logger = logging.getLogger(__name__)

# Floor for a measured duration, avoids division by zero on loopback
MIN_ELAPSED_SECONDS = 0.001


def detect_preset(upload_speed_mbps: float, rtt_ms: float) -> str:
    """Map measured throughput and latency to a preset name."""
    if upload_speed_mbps > 50 and rtt_ms < 50:
        return "ultrafast"
    if upload_speed_mbps > 20 and rtt_ms < 100:
        return "fast"
    if upload_speed_mbps > 5 and rtt_ms < 200:
        return "medium"
    return "slow"


class NetworkProbe(BaseService):
    """Measures the link to the relay."""

    def __init__(
        self,
        client,
        *,
        payload_kb: int = PROBE_PAYLOAD_KB,
        iterations: int = PROBE_ITERATIONS,
        clock: Callable[[], float] = time.perf_counter,
    ):
        super().__init__(client)
        self.payload_kb = payload_kb
        self.iterations = iterations
        self.clock = clock

    def _timed_post(self, payload: bytes) -> float:
        """POST a payload and return elapsed seconds minus the relay's hold time."""
        start = self.clock()
        result = self.client.network_test(payload)
        elapsed = self.clock() - start - result.delay_ms / 1000
        return max(elapsed, MIN_ELAPSED_SECONDS)

    def measure(self) -> NetworkStats:
        """Run the probe.

        Returns:
            Measured stats with the detected preset.

        Raises:
            ChunkRelayError: If any probe request fails.
        """
        rtt_ms = self._timed_post(b"\0") * 1000

        payload = bytes(self.payload_kb * 1024)
        total = sum(self._timed_post(payload) for _ in range(self.iterations))
        avg_seconds = total / self.iterations

        # KB -> Mbit: KB * 8 / 1024
        upload_speed_mbps = (self.payload_kb * 8 / 1024) / avg_seconds

        preset = detect_preset(upload_speed_mbps, rtt_ms)
        logger.info(
            "Network probe: %.2f Mbps, rtt %.1f ms -> %s", upload_speed_mbps, rtt_ms, preset
        )
        return NetworkStats(
            upload_speed_mbps=upload_speed_mbps,
            rtt_ms=rtt_ms,
            detected_preset=preset,
            last_tested=datetime.now(),
        )

    def probe(self) -> NetworkStats:
        """Run the probe, falling back to the default preset on failure."""
        try:
            return self.measure()
        except ChunkRelayError as e:
            logger.warning("Network probe failed, using %s preset: %s", DEFAULT_PRESET, e)
            return NetworkStats(detected_preset=DEFAULT_PRESET, last_tested=datetime.now())


def is_probe_stale(stats: NetworkStats, now: datetime | None = None) -> bool:
    """Check whether the last probe is missing or older than the auto interval."""
    age = stats.age_seconds(now)
    return age is None or age > AUTO_PROBE_INTERVAL_SECONDS


def resolve_auto_settings(
    config: Config,
    probe: NetworkProbe,
    now: datetime | None = None,
) -> TransferSettings:
    """Apply the detected preset when transfer settings are in auto mode.

    Re-probes when the last result is stale and stores the new stats on
    ``config``. Manual presets and custom values are returned unchanged.

    Args:
        config: Loaded configuration (mutated in place).
        probe: Probe bound to the target relay.
        now: Current time, for tests.

    Returns:
        Settings to use for the next upload.
    """
    if config.transfer.network_preset != PRESET_AUTO:
        return config.transfer

    if is_probe_stale(config.network, now):
        config.network = probe.probe()

    config.transfer = TransferSettings.from_preset(config.network.detected_preset, auto=True)
    return config.transfer
