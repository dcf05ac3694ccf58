"""
Command execution service.

Runs external programs (aerospace, open, osascript, system_profiler) with a
bounded timeout and captures exit code, stdout and stderr. A non-zero exit is
returned as data; callers decide whether it is an error. A timeout is raised
as CommandTimeoutError so callers can tell "ran and failed" from "never
finished".
"""

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ..errors import CommandNotFoundError, CommandTimeoutError

logger = logging.getLogger(__name__)

# Homebrew locations missing from the PATH of GUI-launched processes
EXTRA_SEARCH_PATHS = ("/opt/homebrew/bin", "/usr/local/bin")

# How long to wait for a killed child to be reaped before abandoning its pipes
KILL_GRACE_SECONDS = 0.5


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of a finished process."""
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def format_command(executable: str, args: Sequence[str]) -> str:
    """Render a command line for logs and error messages."""
    return " ".join([executable, *args])


def resolve_executable(name: str, extra_paths: Sequence[str] = EXTRA_SEARCH_PATHS) -> Optional[str]:
    """Locate an executable on PATH or in the Homebrew prefixes.

    Args:
        name: Executable name or absolute path

    Returns:
        Absolute path, or None if not found
    """
    if os.path.isabs(name):
        return name if os.access(name, os.X_OK) else None

    found = shutil.which(name)
    if found:
        return found

    for directory in extra_paths:
        candidate = Path(directory) / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
    return None


class CommandRunner:
    """Runs external commands with a timeout."""

    def __init__(self, default_timeout: float = 5.0):
        """
        Initialize command runner.

        Args:
            default_timeout: Timeout in seconds when run() is not given one
        """
        self.default_timeout = default_timeout

    async def run(
        self,
        executable: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        """
        Run a command and capture its output.

        Args:
            executable: Program name or path
            args: Command arguments
            timeout: Seconds before the child is killed (default: default_timeout)
            cwd: Working directory

        Returns:
            CommandResult with exit code and decoded output

        Raises:
            CommandNotFoundError: If the executable cannot be spawned
            CommandTimeoutError: If the command does not finish in time
        """
        timeout = self.default_timeout if timeout is None else timeout
        command_str = format_command(executable, args)
        resolved = resolve_executable(executable) or executable

        logger.debug(f"Running: {command_str} (timeout {timeout:g}s)")

        try:
            process = await asyncio.create_subprocess_exec(
                resolved,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.debug(f"Failed to spawn {executable}: {e}")
            raise CommandNotFoundError(executable, str(e)) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            await self._kill(process, command_str)
            logger.warning(f"Command timed out after {timeout:g}s: {command_str}")
            raise CommandTimeoutError(command_str, timeout) from None

        result = CommandResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
        )
        logger.debug(f"  Return code: {result.exit_code}")
        if result.stderr.strip():
            logger.debug(f"  stderr: {result.stderr.strip()[:200]}")
        return result

    async def _kill(self, process: asyncio.subprocess.Process, command_str: str) -> None:
        """Kill a timed-out child without waiting on its pipes.

        A grandchild that inherited stdout can keep the pipe open long after
        the child dies, so reaping is bounded and unread output is dropped.
        """
        try:
            process.kill()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=KILL_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.debug(f"Abandoning pipes of killed process: {command_str}")
