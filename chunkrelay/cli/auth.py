"""Authentication commands for chunkrelay."""

from __future__ import annotations

import click

from chunkrelay.core.auth import AuthManager
from chunkrelay.core.client import RelayClient
from chunkrelay.core.config import Config, get_token
from chunkrelay.core.exceptions import AuthenticationError, ChunkRelayError, ProfileNotFoundError
from chunkrelay.core.output import (
    print_error,
    print_json,
    print_key_value,
    print_success,
    print_warning,
)


@click.group()
def auth() -> None:
    """Manage relay access tokens."""
    pass


@auth.command("login")
@click.option("--profile", "-p", "profile_name", help="Profile to authenticate")
@click.option(
    "--secret",
    envvar="CHUNKRELAY_SECRET",
    help="Shared secret (will prompt if not provided)",
)
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
def auth_login(profile_name: str | None, secret: str | None, output: str) -> None:
    """Exchange the relay's shared secret for a bearer token.

    The token is cached for 24 hours and sent with every upload request.

    Example:
        chunkrelay auth login
        chunkrelay auth login --profile production
    """
    config = Config.load()
    auth_mgr = AuthManager()

    try:
        profile = config.get_profile(profile_name)
    except ProfileNotFoundError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    if not secret:
        secret = click.prompt("Secret key", hide_input=True)

    client = RelayClient(
        base_url=profile.url,
        verify_ssl=profile.verify_ssl,
        timeout=profile.timeout,
    )

    try:
        token = client.authenticate(secret)
        cached = auth_mgr.save_token(token=token, url=profile.url)

        if output == "json":
            print_json(
                {
                    "status": "authenticated",
                    "url": profile.url,
                    "expires_at": cached.expires_at.isoformat() if cached.expires_at else None,
                }
            )
        else:
            print_success(f"Authenticated with {profile.url}")
            click.echo(f"Token cached until {cached.expires_at}")

    except AuthenticationError as e:
        print_error(f"Authentication failed: {e}")
        raise SystemExit(2) from e
    except ChunkRelayError as e:
        print_error(str(e))
        raise SystemExit(1) from e
    finally:
        client.close()


@auth.command("logout")
def auth_logout() -> None:
    """Clear the cached token.

    Example:
        chunkrelay auth logout
    """
    if AuthManager().clear_token():
        print_success("Logged out")
    else:
        print_warning("No cached token found")


@auth.command("status")
@click.option("--profile", "-p", "profile_name", help="Profile to check")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
def auth_status(profile_name: str | None, output: str) -> None:
    """Show the cached token state.

    Example:
        chunkrelay auth status
    """
    config = Config.load()
    auth_mgr = AuthManager()

    try:
        profile = config.get_profile(profile_name)
    except ProfileNotFoundError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    token_info = auth_mgr.get_token_info(profile.url)
    status = {
        "url": profile.url,
        "env_token": "(set)" if get_token() else "(not set)",
        "token_cached": token_info is not None,
    }
    if token_info:
        status.update(
            {
                "token_created": token_info["created_at"],
                "token_expires": token_info["expires_at"],
                "token_expired": token_info["is_expired"],
            }
        )

    if output == "json":
        print_json(status)
    else:
        print_key_value(status, title=f"Auth Status: {profile_name or config.default_profile}")
