"""Config commands for chunkrelay."""

from __future__ import annotations

import dataclasses
from typing import Optional

import click

from chunkrelay.core.config import CONFIG_FILE, Config, TransferSettings
from chunkrelay.core.exceptions import ChunkRelayError
from chunkrelay.core.output import (
    OutputFormat,
    format_size,
    print_error,
    print_key_value,
    print_output,
    print_success,
    print_warning,
)
from chunkrelay.core.validation import (
    validate_chunk_size_mb,
    validate_parallel_chunks,
    validate_server_url,
    validate_upload_concurrency,
)
from chunkrelay.uploaders.constants import MIB, NETWORK_PRESETS, PRESET_AUTO


def _load_or_exit() -> Config:
    try:
        return Config.load()
    except ChunkRelayError as e:
        print_error(str(e))
        raise SystemExit(1) from e


def _transfer_view(settings: TransferSettings) -> dict:
    return {
        "network_preset": settings.network_preset,
        "chunk_size": format_size(settings.chunk_size),
        "max_parallel_chunks": settings.max_parallel_chunks,
        "upload_concurrency": settings.upload_concurrency,
        "estimated_memory": format_size(settings.estimated_memory_bytes),
    }


@click.group()
def config() -> None:
    """Manage chunkrelay configuration."""
    pass


@config.command("init")
@click.option("--url", prompt="Relay server URL", help="Relay server URL")
@click.option("--profile", default="default", help="Profile name")
@click.option("--timeout", type=int, default=30, help="Request timeout in seconds")
@click.option("--no-verify-ssl", is_flag=True, help="Disable SSL verification")
@click.option("--force", is_flag=True, help="Overwrite an existing profile")
def config_init(url: str, profile: str, timeout: int, no_verify_ssl: bool, force: bool) -> None:
    """Create the configuration file with a new profile.

    Example:
        chunkrelay config init --url https://relay.example.org
    """
    try:
        url = validate_server_url(url)
    except ChunkRelayError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    if CONFIG_FILE.exists():
        cfg = _load_or_exit()
        if cfg.has_profile(profile) and not force:
            print_error(f"Profile '{profile}' already exists. Use --force to overwrite.")
            raise SystemExit(1)
    else:
        cfg = Config()

    cfg.add_profile(name=profile, url=url, timeout=timeout, verify_ssl=not no_verify_ssl)

    if len(cfg.profiles) == 1:
        cfg.default_profile = profile

    cfg.save()

    print_success(f"Configuration saved to {CONFIG_FILE}")
    print_key_value({"profile": profile, "url": url, "timeout": f"{timeout}s"})


@config.command("show")
@click.option("--output", "-o", type=click.Choice(["json", "table"]), default="table")
def config_show(output: str) -> None:
    """Show current configuration."""
    cfg = _load_or_exit()

    if not cfg.profiles:
        print_error("No configuration found. Run 'chunkrelay config init' first.")
        raise SystemExit(1)

    if output == "json":
        print_output(
            {
                "config_file": str(CONFIG_FILE),
                "default_profile": cfg.default_profile,
                "profiles": {name: p.to_dict() for name, p in cfg.profiles.items()},
                "transfer": cfg.transfer.to_dict(),
                "network": cfg.network.to_dict(),
            },
            format=OutputFormat.JSON,
        )
        return

    print_key_value(
        {
            "config_file": str(CONFIG_FILE),
            "default_profile": cfg.default_profile,
            "profiles": ", ".join(cfg.profiles),
        },
        title="Configuration",
    )

    click.echo()
    for name, profile in cfg.profiles.items():
        marker = " (default)" if name == cfg.default_profile else ""
        click.echo(f"Profile: {name}{marker}")
        print_key_value(
            {
                "url": profile.url,
                "verify_ssl": profile.verify_ssl,
                "timeout": f"{profile.timeout}s",
            }
        )
        click.echo()

    print_key_value(_transfer_view(cfg.transfer), title="Transfer")


@config.command("use-context")
@click.argument("profile")
def config_use_context(profile: str) -> None:
    """Switch the active profile.

    Example:
        chunkrelay config use-context production
    """
    cfg = _load_or_exit()

    if not cfg.has_profile(profile):
        print_error(f"Profile '{profile}' not found.")
        click.echo(f"Available profiles: {', '.join(cfg.profiles.keys())}")
        raise SystemExit(1)

    cfg.set_default_profile(profile)
    cfg.save()

    print_success(f"Switched to profile '{profile}'")


@config.command("set")
@click.option("--chunk-size-mb", type=int, default=None, help="Chunk size in MiB")
@click.option("--parallel-chunks", type=int, default=None, help="Chunks in flight per file")
@click.option("--concurrency", type=int, default=None, help="Files uploaded at the same time")
def config_set(
    chunk_size_mb: Optional[int],
    parallel_chunks: Optional[int],
    concurrency: Optional[int],
) -> None:
    """Set custom transfer values (switches auto mode off).

    Example:
        chunkrelay config set --chunk-size-mb 10 --parallel-chunks 4
    """
    if chunk_size_mb is None and parallel_chunks is None and concurrency is None:
        print_error("Nothing to set. Pass at least one option.")
        raise SystemExit(1)

    cfg = _load_or_exit()
    changes: dict = {}
    try:
        if chunk_size_mb is not None:
            changes["chunk_size"] = validate_chunk_size_mb(chunk_size_mb) * MIB
        if parallel_chunks is not None:
            changes["max_parallel_chunks"] = validate_parallel_chunks(parallel_chunks)
        if concurrency is not None:
            changes["upload_concurrency"] = validate_upload_concurrency(concurrency)
    except ChunkRelayError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    # Custom values keep the last preset name but leave auto mode
    preset = cfg.transfer.network_preset
    if preset == PRESET_AUTO:
        preset = cfg.network.detected_preset
    cfg.transfer = dataclasses.replace(cfg.transfer, network_preset=preset, **changes)
    cfg.save()

    print_success("Transfer settings updated")
    print_key_value(_transfer_view(cfg.transfer))
    if cfg.transfer.is_high_memory:
        print_warning("These settings may use a lot of memory")


@config.command("preset")
@click.argument("name", type=click.Choice([PRESET_AUTO, *NETWORK_PRESETS]))
def config_preset(name: str) -> None:
    """Select a network preset, or 'auto' to follow the network probe.

    Example:
        chunkrelay config preset fast
        chunkrelay config preset auto
    """
    cfg = _load_or_exit()

    if name == PRESET_AUTO:
        cfg.transfer = TransferSettings.from_preset(cfg.network.detected_preset, auto=True)
    else:
        cfg.transfer = TransferSettings.from_preset(name)
    cfg.save()

    print_success(f"Network preset set to '{name}'")
    print_key_value(_transfer_view(cfg.transfer))
