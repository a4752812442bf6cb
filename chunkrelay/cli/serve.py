"""Relay server command for chunkrelay."""

from __future__ import annotations

from typing import Optional

import click

from chunkrelay.core.exceptions import ConfigurationError
from chunkrelay.core.output import print_error


@click.command("serve")
@click.option("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
@click.option("--port", type=int, default=None, help="Port (default: PORT or 8000)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
def serve(host: Optional[str], port: Optional[int], reload: bool) -> None:
    """Run the relay server.

    Storage and auth settings come from the environment or a .env file
    (CLOUD_PROVIDER, AWS_S3_BUCKET, GCP_BUCKET_NAME, APP_SECRET_KEY, ...).

    Example:
        chunkrelay serve --port 8080
    """
    from chunkrelay.server.app import main as run_server

    try:
        run_server(host=host, port=port, reload=reload)
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(1) from e
