"""Upload history and statistics commands for chunkrelay."""

from __future__ import annotations

from dataclasses import asdict

import click

from chunkrelay.cli.common import Context, global_options, handle_errors
from chunkrelay.core.output import OutputFormat, format_size, print_output, print_success
from chunkrelay.services.history import DEFAULT_PAGE_SIZE, HistoryStore, StatsStore


@click.group()
def history() -> None:
    """Browse completed uploads."""
    pass


@history.command("list")
@click.option("--page", type=int, default=1, show_default=True, help="Page number")
@click.option("--limit", type=int, default=DEFAULT_PAGE_SIZE, show_default=True)
@global_options
@handle_errors
def history_list(ctx: Context, page: int, limit: int) -> None:
    """List completed uploads, newest first.

    Example:
        chunkrelay history list
        chunkrelay history list --page 2 -o json
    """
    store = HistoryStore()
    entries = store.get_history(page=page, limit=limit)

    if ctx.output_format == OutputFormat.JSON:
        print_output(
            {
                "page": page,
                "limit": limit,
                "total": store.count(),
                "entries": [asdict(e) for e in entries],
            },
            format=OutputFormat.JSON,
        )
        return

    rows = [
        {
            "file_name": e.file_name,
            "size": format_size(e.file_size),
            "uploaded": e.upload_date[:19].replace("T", " "),
            "file_key": e.file_key,
            "url": e.url,
        }
        for e in entries
    ]
    print_output(
        rows,
        format=OutputFormat.TABLE,
        columns=["file_name", "size", "uploaded", "file_key"],
        column_labels={"file_name": "File", "file_key": "Object Key"},
        quiet=ctx.quiet,
        id_field="file_key",
    )


@history.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def history_clear(yes: bool) -> None:
    """Delete the upload history."""
    if not yes:
        click.confirm("Clear upload history?", abort=True)
    HistoryStore().clear()
    print_success("History cleared")


@click.group()
def stats() -> None:
    """Show running upload totals."""
    pass


@stats.command("show")
@global_options
@handle_errors
def stats_show(ctx: Context) -> None:
    """Show upload statistics."""
    current = StatsStore().get()

    if ctx.output_format == OutputFormat.JSON:
        print_output(asdict(current), format=OutputFormat.JSON)
        return

    print_output(
        {
            "total_uploaded": current.total_uploaded,
            "total_size": format_size(current.total_size),
            "success_count": current.success_count,
            "failed_count": current.failed_count,
            "last_upload_date": current.last_upload_date,
        },
        format=OutputFormat.TABLE,
        title="Upload Statistics",
    )


@stats.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def stats_reset(yes: bool) -> None:
    """Reset upload statistics."""
    if not yes:
        click.confirm("Reset upload statistics?", abort=True)
    StatsStore().reset()
    print_success("Statistics reset")
