"""Unit tests for Chrome tab snapshots and their capture."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from agent_panel.core.command_runner import CommandResult
from agent_panel.errors import ApError, CommandFailedError, ErrorCode
from agent_panel.services.chrome_tabs import (
    CAPTURE_TIMEOUT_SECONDS,
    ChromeTabCapture,
    ChromeTabSnapshot,
    ChromeTabStore,
    build_tab_capture_script,
)

CLOSED_AT = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path) -> ChromeTabStore:
    return ChromeTabStore(tmp_path / "chrome-tabs")


class TestChromeTabStore:
    """Tests for per-project snapshot files."""

    def test_missing_snapshot(self, store):
        assert store.load("demo") is None

    def test_save_and_load(self, store):
        snapshot = ChromeTabSnapshot(urls=["https://a.example.com", "https://b.example.com"], captured_at=CLOSED_AT)

        store.save("demo", snapshot)

        assert store.load("demo") == snapshot
        assert store.load("api") is None
        data = json.loads(store.path_for("demo").read_text())
        assert data["version"] == 1
        assert data["urls"] == ["https://a.example.com", "https://b.example.com"]

    def test_delete(self, store):
        store.save("demo", ChromeTabSnapshot(urls=["https://a.example.com"], captured_at=CLOSED_AT))

        store.delete("demo")
        store.delete("demo")

        assert not store.path_for("demo").exists()

    @pytest.mark.parametrize("content", [
        "{broken",
        json.dumps(["https://a.example.com"]),
        json.dumps({"urls": ["https://a.example.com"], "captured_at": "2026-03-02T09:30:00Z"}),
        json.dumps({"version": 1, "urls": [], "captured_at": "2026-03-02T09:30:00Z"}),
        json.dumps({"version": 1, "urls": "https://a.example.com", "captured_at": "2026-03-02T09:30:00Z"}),
        json.dumps({"version": 1, "urls": ["https://a.example.com"]}),
    ])
    def test_malformed_snapshot_is_state_load_failed(self, store, content):
        store.directory.mkdir(parents=True)
        store.path_for("demo").write_text(content)

        with pytest.raises(ApError) as exc_info:
            store.load("demo")

        assert exc_info.value.code == ErrorCode.STATE_LOAD_FAILED


class TestCaptureScript:
    """Tests for the tab-listing AppleScript."""

    def test_does_not_start_chrome(self):
        script = build_tab_capture_script("AP:demo")

        assert script.startswith('if application "Google Chrome" is not running then return ""')
        assert 'given name of w is "AP:demo"' in script

    def test_window_name_is_escaped(self):
        script = build_tab_capture_script('AP:"odd"\\name')

        assert 'given name of w is "AP:\\"odd\\"\\\\name"' in script


class TestChromeTabCapture:
    """Tests for running the capture through osascript."""

    @pytest.mark.asyncio
    async def test_returns_urls_in_tab_order(self):
        runner = AsyncMock()
        runner.run.return_value = CommandResult(0, "https://b.example.com\n\nhttps://a.example.com \n", "")

        urls = await ChromeTabCapture(runner).capture("AP:demo")

        assert urls == ["https://b.example.com", "https://a.example.com"]
        executable, args = runner.run.await_args.args
        assert executable == "osascript"
        assert args[0] == "-e"
        assert runner.run.await_args.kwargs["timeout"] == CAPTURE_TIMEOUT_SECONDS

    @pytest.mark.asyncio
    async def test_no_window_is_empty(self):
        runner = AsyncMock()
        runner.run.return_value = CommandResult(0, "\n", "")

        assert await ChromeTabCapture(runner).capture("AP:demo") == []

    @pytest.mark.asyncio
    async def test_failure_is_command_failed(self):
        runner = AsyncMock()
        runner.run.return_value = CommandResult(1, "", "execution error: Not authorized")

        with pytest.raises(CommandFailedError) as exc_info:
            await ChromeTabCapture(runner).capture("AP:demo")

        assert exc_info.value.code == ErrorCode.COMMAND_FAILED
        assert exc_info.value.exit_code == 1
        assert "<capture tabs>" in exc_info.value.command
