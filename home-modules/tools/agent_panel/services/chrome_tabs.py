"""Chrome tab snapshots.

Closing a project records every tab URL of its `AP:<id>` Chrome window;
the next browser launch for that project reopens exactly those URLs instead
of the configured tabs. One file per project under `state/chrome-tabs/`.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..core.command_runner import CommandRunner, format_command
from ..core.state_files import malformed, read_json, remove_file, write_json_atomic
from ..errors import CommandFailedError

logger = logging.getLogger(__name__)

CAPTURE_TIMEOUT_SECONDS = 10.0

SNAPSHOT_VERSION = 1


class ChromeTabSnapshot(BaseModel):
    """Every tab URL of a project's browser window at close time."""
    urls: List[str] = Field(..., min_length=1)
    captured_at: datetime

    model_config = {"frozen": True}


class ChromeTabStore:
    """Per-project tab snapshot files."""

    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, project_id: str) -> Path:
        return self.directory / f"{project_id}.json"

    def load(self, project_id: str) -> Optional[ChromeTabSnapshot]:
        """Load a project's snapshot.

        Raises:
            ApError: stateLoadFailed if the file is unreadable or malformed
        """
        path = self.path_for(project_id)
        data = read_json(path, "Chrome tab snapshot")
        if data is None:
            return None
        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
            raise malformed(path, "Chrome tab snapshot", "missing or unsupported version")
        try:
            return ChromeTabSnapshot.model_validate({k: v for k, v in data.items() if k != "version"})
        except ValidationError as e:
            raise malformed(path, "Chrome tab snapshot", str(e)) from e

    def save(self, project_id: str, snapshot: ChromeTabSnapshot) -> None:
        """Raises ApError (stateSaveFailed)."""
        data = {"version": SNAPSHOT_VERSION, **snapshot.model_dump(mode="json")}
        write_json_atomic(self.path_for(project_id), data, "Chrome tab snapshot")
        logger.debug(f"Saved {len(snapshot.urls)} tabs for {project_id}")

    def delete(self, project_id: str) -> None:
        """Raises ApError (stateSaveFailed)."""
        remove_file(self.path_for(project_id), "Chrome tab snapshot")


def escape_applescript(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_tab_capture_script(window_name: str) -> str:
    """AppleScript listing the tab URLs of the Chrome window named `window_name`, one per line.

    Prints nothing when Chrome is not running or has no such window, and
    never starts Chrome.
    """
    name = escape_applescript(window_name)
    return (
        'if application "Google Chrome" is not running then return ""\n'
        'tell application "Google Chrome"\n'
        '  set targetWindow to missing value\n'
        '  repeat with w in windows\n'
        f'    if given name of w is "{name}" then\n'
        '      set targetWindow to w\n'
        '      exit repeat\n'
        '    end if\n'
        '  end repeat\n'
        '  if targetWindow is missing value then return ""\n'
        '  set urlList to {}\n'
        '  repeat with t in tabs of targetWindow\n'
        '    set end of urlList to URL of t\n'
        '  end repeat\n'
        '  set AppleScript\'s text item delimiters to linefeed\n'
        '  return urlList as text\n'
        'end tell'
    )


class ChromeTabCapture:
    """Reads tab URLs from a named Chrome window through osascript."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    async def capture(self, window_name: str) -> List[str]:
        """Tab URLs of the named window, in tab order; empty if it is not open.

        Raises:
            ApError: commandFailed if osascript fails or times out
        """
        args = ["-e", build_tab_capture_script(window_name)]
        result = await self.runner.run("osascript", args, timeout=CAPTURE_TIMEOUT_SECONDS)
        if not result.ok:
            raise CommandFailedError(
                command=format_command("osascript", ["-e", "<capture tabs>"]),
                exit_code=result.exit_code,
                stderr=result.stderr,
                stdout=result.stdout,
            )
        urls = [line.strip() for line in result.stdout.splitlines()]
        return [url for url in urls if url]
