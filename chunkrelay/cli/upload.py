"""Upload, cancel and status commands for chunkrelay."""

from __future__ import annotations

import dataclasses
import sys
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Optional

import click

from chunkrelay.cli.common import Context, ExitCode, global_options, handle_errors
from chunkrelay.core.client import RelayClient
from chunkrelay.core.config import TransferSettings
from chunkrelay.core.output import (
    OutputFormat,
    create_progress,
    format_size,
    print_error,
    print_info,
    print_output,
    print_success,
    print_warning,
)
from chunkrelay.core.validation import (
    validate_chunk_size_mb,
    validate_parallel_chunks,
    validate_upload_concurrency,
)
from chunkrelay.models.file import FileStatus, UploadableFile
from chunkrelay.models.progress import UploadSummary
from chunkrelay.services.history import HistoryStore, StatsStore
from chunkrelay.services.network import NetworkProbe, is_probe_stale, resolve_auto_settings
from chunkrelay.services.scheduler import UploadScheduler
from chunkrelay.uploaders.constants import MIB, PRESET_AUTO

# Seconds between checks for Ctrl-C while the scheduler runs
POLL_SECONDS = 0.2


def _resolve_settings(
    ctx: Context,
    client: RelayClient,
    concurrency: Optional[int],
    parallel_chunks: Optional[int],
    chunk_size_mb: Optional[int],
) -> TransferSettings:
    """Apply auto mode and command-line overrides to the saved settings."""
    config = ctx.config
    settings = config.transfer

    if settings.network_preset == PRESET_AUTO:
        stale = is_probe_stale(config.network)
        settings = resolve_auto_settings(config, NetworkProbe(client))
        if stale:
            config.save()

    overrides = {}
    if chunk_size_mb is not None:
        overrides["chunk_size"] = validate_chunk_size_mb(chunk_size_mb) * MIB
    if parallel_chunks is not None:
        overrides["max_parallel_chunks"] = validate_parallel_chunks(parallel_chunks)
    if concurrency is not None:
        overrides["upload_concurrency"] = validate_upload_concurrency(concurrency)

    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    return settings


def _run_interruptible(
    scheduler: UploadScheduler,
    run: Callable[[], Optional[UploadSummary]],
) -> tuple[Optional[UploadSummary], bool]:
    """Run the scheduler in a worker thread so Ctrl-C can cancel it.

    Returns:
        The run summary and whether the user interrupted it.
    """
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="scheduler") as pool:
        future = pool.submit(run)
        try:
            while True:
                try:
                    return future.result(timeout=POLL_SECONDS), False
                except FutureTimeoutError:
                    continue
        except KeyboardInterrupt:
            count = scheduler.cancel_all_uploads(include_pending=True)
            print_warning(f"Interrupted, cancelled {count} file(s)")
            return future.result(), True


def _file_row(record: UploadableFile) -> dict:
    return {
        "id": record.id,
        "name": record.name,
        "size": format_size(record.size),
        "status": record.status.value,
        "key": record.file_key or "",
        "error": record.error or "",
    }


@click.command("upload")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, path_type=Path),
)
@click.option("--concurrency", type=int, default=None, help="Files uploaded at the same time")
@click.option("--parallel-chunks", type=int, default=None, help="Chunks in flight per file")
@click.option("--chunk-size-mb", type=int, default=None, help="Chunk size in MiB")
@click.option("--retries", type=int, default=0, show_default=True, help="Retry failed files")
@click.option("--no-history", is_flag=True, help="Do not record completed uploads")
@global_options
@handle_errors
def upload(
    ctx: Context,
    paths: tuple[Path, ...],
    concurrency: Optional[int],
    parallel_chunks: Optional[int],
    chunk_size_mb: Optional[int],
    retries: int,
    no_history: bool,
) -> None:
    """Upload files and folders through the relay.

    Folders are walked recursively and each file keeps its path relative to
    the folder's parent. Press Ctrl-C to cancel every in-flight upload.

    Example:
        chunkrelay upload report.pdf
        chunkrelay upload ./scans --concurrency 5 --chunk-size-mb 10
        chunkrelay upload big.iso --retries 2
    """
    client = ctx.get_client()
    settings = _resolve_settings(ctx, client, concurrency, parallel_chunks, chunk_size_mb)

    if settings.is_high_memory:
        print_warning(
            f"Settings may hold up to {format_size(settings.estimated_memory_bytes)} in memory"
        )

    scheduler = UploadScheduler(
        client,
        settings,
        history=None if no_history else HistoryStore(),
        stats=StatsStore(),
    )

    for path in paths:
        if path.is_dir():
            scheduler.process_folder(path)
        else:
            scheduler.prepare_files([path])

    if not scheduler.files:
        print_warning("No files to upload")
        return

    show_progress = ctx.output_format == OutputFormat.TABLE and not ctx.quiet
    runs: list[UploadSummary] = []
    interrupted = False

    def run_once(start: Callable[[], Optional[UploadSummary]]) -> None:
        nonlocal interrupted
        summary, interrupted = _run_interruptible(scheduler, start)
        if summary is not None:
            runs.append(summary)

    if show_progress:
        with create_progress() as progress:
            tasks = {
                record.id: progress.add_task(record.name, total=100)
                for record in scheduler.files
            }

            def on_update(record: UploadableFile) -> None:
                progress.update(
                    tasks[record.id],
                    completed=record.progress,
                    description=f"{record.name} [{record.status.value}]",
                )

            scheduler.on_update = on_update
            run_once(scheduler.start_upload)
            for _ in range(retries):
                if interrupted or not runs or runs[-1].failed == 0:
                    break
                run_once(scheduler.retry_failed_uploads)
    else:
        run_once(scheduler.start_upload)
        for _ in range(retries):
            if interrupted or not runs or runs[-1].failed == 0:
                break
            if not ctx.quiet:
                print_info(f"Retrying {runs[-1].failed} failed file(s)")
            run_once(scheduler.retry_failed_uploads)

    records = scheduler.files
    completed = [r for r in records if r.status == FileStatus.COMPLETED]
    failed = [r for r in records if r.status == FileStatus.FAILED]
    cancelled = [r for r in records if r.status == FileStatus.CANCELLED]
    total_bytes = sum(r.size for r in completed)
    duration = sum(s.duration for s in runs)

    if ctx.output_format == OutputFormat.JSON:
        print_output(
            {
                "success": not failed and not cancelled,
                "total": len(records),
                "succeeded": len(completed),
                "failed": len(failed),
                "cancelled": len(cancelled),
                "total_size_mb": round(total_bytes / MIB, 2),
                "duration_s": round(duration, 2),
                "files": [r.to_dict() for r in records],
            },
            format=OutputFormat.JSON,
        )
    elif ctx.quiet:
        for record in completed:
            click.echo(record.file_key)
    else:
        print_output(
            [_file_row(r) for r in records],
            format=OutputFormat.TABLE,
            columns=["name", "size", "status", "key", "error"],
            column_labels={"key": "Object Key"},
        )
        if completed:
            print_success(
                f"Uploaded {len(completed)} file(s) ({format_size(total_bytes)}) "
                f"in {duration:.1f}s"
            )
        if failed:
            print_error(f"{len(failed)} file(s) failed")
        if cancelled:
            print_warning(f"{len(cancelled)} file(s) cancelled")

    if interrupted:
        sys.exit(ExitCode.USER_CANCELLED)
    if failed:
        sys.exit(ExitCode.GENERAL_ERROR)


@click.command("cancel")
@click.argument("file_id")
@global_options
@handle_errors
def cancel(ctx: Context, file_id: str) -> None:
    """Cancel an upload by file id.

    Marks the file cancelled on the relay; the uploading client stops at
    its next status poll or chunk answer.

    Example:
        chunkrelay cancel 3f2b9c1e-...
    """
    client = ctx.get_client()
    result = client.abort(file_id)

    if ctx.output_format == OutputFormat.JSON:
        print_output({"file_id": file_id, **result.to_dict()}, format=OutputFormat.JSON)
    elif not ctx.quiet:
        print_success(result.message)


@click.command("status")
@click.argument("file_id")
@global_options
@handle_errors
def status(ctx: Context, file_id: str) -> None:
    """Show whether the relay considers a file id cancelled.

    Example:
        chunkrelay status 3f2b9c1e-...
    """
    client = ctx.get_client()
    result = client.status(file_id)

    print_output(
        {"file_id": file_id, "cancelled": result.cancelled},
        format=ctx.output_format,
        quiet=ctx.quiet,
        id_field="file_id",
    )
