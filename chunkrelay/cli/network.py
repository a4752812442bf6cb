"""Network probe commands for chunkrelay."""

from __future__ import annotations

import click

from chunkrelay.cli.common import Context, global_options, handle_errors
from chunkrelay.core.config import TransferSettings
from chunkrelay.core.output import OutputFormat, create_spinner, print_output, print_warning
from chunkrelay.services.network import NetworkProbe
from chunkrelay.uploaders.constants import PRESET_AUTO


@click.group()
def network() -> None:
    """Measure the link to the relay."""
    pass


@network.command("probe")
@click.option("--apply/--no-apply", default=True, help="Apply the result when in auto mode")
@global_options
@handle_errors
def network_probe(ctx: Context, apply: bool) -> None:
    """Measure upload speed and latency and pick a preset.

    The result is saved. In auto mode the detected preset becomes the
    active transfer settings.

    Example:
        chunkrelay network probe
        chunkrelay network probe -o json
    """
    client = ctx.get_client()
    probe = NetworkProbe(client)

    if ctx.output_format == OutputFormat.TABLE and not ctx.quiet:
        with create_spinner() as spinner:
            spinner.add_task("Probing network...", total=None)
            stats = probe.measure()
    else:
        stats = probe.measure()

    config = ctx.config
    config.network = stats
    applied = apply and config.transfer.network_preset == PRESET_AUTO
    if applied:
        config.transfer = TransferSettings.from_preset(stats.detected_preset, auto=True)
    config.save()

    result = {
        "upload_speed_mbps": round(stats.upload_speed_mbps, 2),
        "rtt_ms": round(stats.rtt_ms, 1),
        "detected_preset": stats.detected_preset,
        "applied": applied,
    }
    print_output(
        result,
        format=ctx.output_format,
        quiet=ctx.quiet,
        id_field="detected_preset",
        title="Network Probe",
    )

    if not applied and not ctx.quiet and ctx.output_format == OutputFormat.TABLE:
        print_warning(
            f"Preset '{config.transfer.network_preset}' is fixed; "
            "run 'chunkrelay config preset auto' to follow the probe"
        )
