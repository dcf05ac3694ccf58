"""Unit tests for CommandRunner."""

import time

import pytest

from agent_panel.core.command_runner import CommandResult, CommandRunner, format_command, resolve_executable
from agent_panel.errors import CommandNotFoundError, CommandTimeoutError, ErrorCode


class TestCommandRunner:
    """Tests for running real child processes."""

    @pytest.mark.asyncio
    async def test_captures_stdout_and_exit_code(self):
        runner = CommandRunner()
        result = await runner.run("sh", ["-c", "echo hello"])

        assert result.ok
        assert result.exit_code == 0
        assert result.stdout == "hello\n"
        assert result.stderr == ""

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_data_not_error(self):
        """A failing command returns its exit code and stderr."""
        runner = CommandRunner()
        result = await runner.run("sh", ["-c", "echo broken >&2; exit 3"])

        assert not result.ok
        assert result.exit_code == 3
        assert "broken" in result.stderr

    @pytest.mark.asyncio
    async def test_timeout_raises_distinct_error(self):
        runner = CommandRunner()

        start = time.monotonic()
        with pytest.raises(CommandTimeoutError) as exc_info:
            await runner.run("sleep", ["5"], timeout=0.2)
        elapsed = time.monotonic() - start

        assert elapsed < 2.0
        assert exc_info.value.code == ErrorCode.COMMAND_FAILED
        assert exc_info.value.timeout_seconds == 0.2
        assert exc_info.value.command == "sleep 5"

    @pytest.mark.asyncio
    async def test_timeout_does_not_wait_for_inherited_pipes(self):
        """A grandchild holding stdout open must not stall the timeout."""
        runner = CommandRunner()

        start = time.monotonic()
        with pytest.raises(CommandTimeoutError):
            await runner.run("sh", ["-c", "sleep 5 & sleep 5"], timeout=0.2)

        assert time.monotonic() - start < 2.0

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        runner = CommandRunner()

        with pytest.raises(CommandNotFoundError) as exc_info:
            await runner.run("agent-panel-no-such-binary", [])

        assert exc_info.value.executable == "agent-panel-no-such-binary"
        assert exc_info.value.code == ErrorCode.COMMAND_FAILED


def test_format_command():
    assert format_command("aerospace", ["focus", "--window-id", "42"]) == "aerospace focus --window-id 42"


def test_resolve_executable_checks_extra_paths(tmp_path):
    binary = tmp_path / "agent-panel-test-tool"
    binary.write_text("#!/bin/sh\n")
    binary.chmod(0o755)

    assert resolve_executable("agent-panel-test-tool", extra_paths=[str(tmp_path)]) == str(binary)
    assert resolve_executable("agent-panel-no-such-binary", extra_paths=[str(tmp_path)]) is None
    assert resolve_executable(str(binary)) == str(binary)


def test_command_result_ok():
    assert CommandResult(0, "", "").ok
    assert not CommandResult(1, "", "").ok
