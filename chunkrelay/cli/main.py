"""Main CLI entry point for chunkrelay."""

from __future__ import annotations

import click

from chunkrelay import __version__
from chunkrelay.cli.auth import auth
from chunkrelay.cli.common import Context, global_options, handle_errors
from chunkrelay.cli.config_cmd import config
from chunkrelay.cli.history import history, stats
from chunkrelay.cli.network import network
from chunkrelay.cli.serve import serve
from chunkrelay.cli.upload import cancel, status, upload
from chunkrelay.core.output import OutputFormat, print_output, print_success

# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="chunkrelay")
def cli() -> None:
    """chunkrelay - chunked, cancellable uploads to S3 or GCS through a relay.

    Get started:

      chunkrelay config init        # Point at a relay server

      chunkrelay auth login         # Exchange the shared secret for a token

      chunkrelay upload ./data      # Upload files and folders

    Use --help on any command for more information.
    """
    pass


# =============================================================================
# Register Commands
# =============================================================================

cli.add_command(upload)
cli.add_command(cancel)
cli.add_command(status)
cli.add_command(config)
cli.add_command(auth)
cli.add_command(network)
cli.add_command(history)
cli.add_command(stats)
cli.add_command(serve)


# =============================================================================
# Top-Level Commands
# =============================================================================


@cli.command("ping")
@global_options
@handle_errors
def ping(ctx: Context) -> None:
    """Check relay connectivity and bucket access."""
    client = ctx.get_client()
    result = client.health()

    if ctx.output_format == OutputFormat.JSON:
        print_output(result, format=OutputFormat.JSON)
        return

    print_success(f"Relay reachable: {client.base_url}")
    print_output(
        {
            "status": result.get("status"),
            "provider": result.get("provider"),
            "bucket": result.get("bucket"),
            "bucket_accessible": result.get("bucketAccessible"),
            "latency": f"{result.get('latency_ms')}ms",
        },
        format=OutputFormat.TABLE,
    )


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
