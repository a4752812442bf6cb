"""Tests for the upload, cancel and status commands."""

from __future__ import annotations

import _thread
import json
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml
from click.testing import CliRunner
from conftest import write_config, write_file

from chunkrelay.cli.main import cli
from chunkrelay.cli.upload import _run_interruptible
from chunkrelay.services.history import HistoryStore


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


def _json(output: str) -> dict:
    """Extract the JSON document printed by a command."""
    lines = output.splitlines()
    start = lines.index("{")
    end = len(lines) - 1 - lines[::-1].index("}")
    return json.loads("\n".join(lines[start : end + 1]))


# =============================================================================
# Upload
# =============================================================================


class TestUploadCommand:
    """Tests for chunkrelay upload."""

    def test_upload_file_json(self, runner, cli_home, routed_client, fake_backend):
        write_config(cli_home)
        path = write_file(cli_home / "data" / "report.bin", 2 * 1024 * 1024 + 5)

        result = runner.invoke(cli, ["upload", str(path), "-o", "json"])

        assert result.exit_code == 0, result.output
        body = _json(result.output)
        assert body["success"] is True
        assert body["succeeded"] == 1
        record = body["files"][0]
        assert record["status"] == "completed"
        assert fake_backend.objects[record["file_key"]] == path.read_bytes()

    def test_upload_records_history(self, runner, cli_home, routed_client):
        write_config(cli_home)
        path = write_file(cli_home / "a.txt", 10)

        runner.invoke(cli, ["upload", str(path), "-o", "json"])

        entries = HistoryStore(cli_home / "history.json").get_history()
        assert [e.file_name for e in entries] == ["a.txt"]

    def test_no_history_flag(self, runner, cli_home, routed_client):
        write_config(cli_home)
        path = write_file(cli_home / "a.txt", 10)

        runner.invoke(cli, ["upload", str(path), "--no-history", "-o", "json"])

        assert not (cli_home / "history.json").exists()

    def test_upload_folder_keeps_relative_names(self, runner, cli_home, routed_client):
        write_config(cli_home)
        write_file(cli_home / "docs" / "a.txt", 10)
        write_file(cli_home / "docs" / "sub" / "b.txt", 10)

        result = runner.invoke(cli, ["upload", str(cli_home / "docs"), "-o", "json"])

        assert result.exit_code == 0, result.output
        names = sorted(f["name"] for f in _json(result.output)["files"])
        assert names == ["docs/a.txt", "docs/sub/b.txt"]

    def test_quiet_prints_object_keys(self, runner, cli_home, routed_client):
        write_config(cli_home)
        path = write_file(cli_home / "a.txt", 10)

        result = runner.invoke(cli, ["upload", str(path), "-q"])

        assert result.exit_code == 0
        assert result.output.strip().startswith("uploads/")
        assert result.output.strip().endswith("-a.txt")

    def test_table_output(self, runner, cli_home, routed_client):
        write_config(cli_home)
        path = write_file(cli_home / "a.txt", 10)

        result = runner.invoke(cli, ["upload", str(path)])

        assert result.exit_code == 0, result.output
        assert "Uploaded 1 file(s)" in result.output

    def test_empty_folder(self, runner, cli_home, routed_client):
        write_config(cli_home)
        (cli_home / "empty").mkdir()

        result = runner.invoke(cli, ["upload", str(cli_home / "empty")])

        assert result.exit_code == 0
        assert "No files to upload" in result.output

    def test_failed_upload_exits_1(self, runner, cli_home, routed_client, fake_backend):
        write_config(cli_home)
        fake_backend.fail_complete = True
        path = write_file(cli_home / "a.txt", 10)

        result = runner.invoke(cli, ["upload", str(path), "-o", "json"])

        assert result.exit_code == 1
        body = _json(result.output)
        assert body["failed"] == 1
        assert body["files"][0]["status"] == "failed"

    def test_retries_failed_files(self, runner, cli_home, routed_client, fake_backend):
        write_config(cli_home)
        path = write_file(cli_home / "a.txt", 10)
        original = fake_backend.complete_multipart
        calls = {"n": 0}

        def flaky_complete(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                fake_backend.fail_complete = True
            try:
                return original(*args, **kwargs)
            finally:
                fake_backend.fail_complete = False

        fake_backend.complete_multipart = flaky_complete

        result = runner.invoke(cli, ["upload", str(path), "--retries", "1", "-o", "json"])

        assert result.exit_code == 0, result.output
        body = _json(result.output)
        assert body["succeeded"] == 1
        assert body["files"][0]["retry_count"] == 1

    def test_invalid_override(self, runner, cli_home, routed_client):
        write_config(cli_home)
        path = write_file(cli_home / "a.txt", 10)

        result = runner.invoke(cli, ["upload", str(path), "--parallel-chunks", "0"])

        assert result.exit_code == 1
        assert "max_parallel_chunks" in " ".join(result.output.split())

    def test_missing_profile(self, runner, cli_home):
        path = write_file(cli_home / "a.txt", 10)

        result = runner.invoke(cli, ["upload", str(path)])

        assert result.exit_code == 1
        assert "config init" in " ".join(result.output.split())

    def test_missing_path(self, runner, cli_home):
        result = runner.invoke(cli, ["upload", str(cli_home / "nope")])

        assert result.exit_code == 2

    def test_auto_mode_probes_and_saves(self, runner, cli_home, routed_client):
        config_path = write_config(cli_home, preset="auto")
        path = write_file(cli_home / "a.txt", 10)

        result = runner.invoke(cli, ["upload", str(path), "-o", "json"])

        assert result.exit_code == 0, result.output
        saved = yaml.safe_load(config_path.read_text())
        assert saved["network"]["last_tested"] is not None
        assert saved["transfer"]["network_preset"] == "auto"


# =============================================================================
# Interruption
# =============================================================================


class TestRunInterruptible:
    """Tests for running the scheduler off the main thread."""

    def test_returns_summary(self):
        summary = MagicMock()

        result, interrupted = _run_interruptible(MagicMock(), lambda: summary)

        assert result is summary
        assert interrupted is False

    def test_ctrl_c_cancels_everything(self):
        cancelled = threading.Event()
        scheduler = MagicMock()
        scheduler.cancel_all_uploads.side_effect = lambda **kw: cancelled.set() or 2
        summary = MagicMock()

        def run():
            time.sleep(0.1)
            _thread.interrupt_main()
            cancelled.wait(5)
            return summary

        result, interrupted = _run_interruptible(scheduler, run)

        assert interrupted is True
        assert result is summary
        scheduler.cancel_all_uploads.assert_called_once_with(include_pending=True)


# =============================================================================
# Cancel and Status
# =============================================================================


class TestCancelCommand:
    """Tests for chunkrelay cancel and status."""

    def test_cancel_marks_file(self, runner, cli_home, routed_client, session_store):
        write_config(cli_home)

        result = runner.invoke(cli, ["cancel", "file-123"])

        assert result.exit_code == 0, result.output
        assert "Upload marked as cancelled" in result.output
        assert session_store.is_cancelled("file-123")

    def test_cancel_json(self, runner, cli_home, routed_client):
        write_config(cli_home)

        result = runner.invoke(cli, ["cancel", "file-123", "-o", "json"])

        body = _json(result.output)
        assert body["file_id"] == "file-123"
        assert body["success"] is True

    def test_status(self, runner, cli_home, routed_client):
        write_config(cli_home)
        runner.invoke(cli, ["cancel", "file-123"])

        result = runner.invoke(cli, ["status", "file-123", "-o", "json"])

        assert _json(result.output) == {"file_id": "file-123", "cancelled": True}
