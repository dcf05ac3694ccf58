"""AeroSpace CLI client.

Typed async wrapper around the `aerospace` command surface. Every call goes
through the shared CircuitBreaker and the CommandRunner. Listings are
requested with an explicit `--format` string and parsed strictly: any line
that does not have the expected shape is an OutputParseError rather than a
best-effort salvage, so upstream format drift is caught immediately.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import (
    ApError,
    CommandFailedError,
    ErrorCode,
    OutputParseError,
    incompatible,
)
from ..models.window import (
    WindowRecord,
    WorkspaceState,
    WorkspaceSummary,
    project_id_from_workspace,
)
from .circuit_breaker import CircuitBreaker
from .command_runner import CommandResult, CommandRunner, format_command

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "||"
WINDOW_FORMAT = "%{window-id}||%{app-bundle-id}||%{workspace}||%{window-title}"
WORKSPACE_FORMAT = "%{workspace}||%{workspace-is-focused}"

DEFAULT_TIMEOUT_SECONDS = 5.0
HELP_TIMEOUT_SECONDS = 2.0

# Subcommands and the flags they must advertise in --help output
REQUIRED_FLAGS: Dict[str, Tuple[str, ...]] = {
    "list-workspaces": ("--all", "--focused"),
    "list-windows": ("--monitor", "--workspace", "--focused", "--app-bundle-id", "--format"),
    "summon-workspace": (),
    "move-node-to-workspace": ("--window-id",),
    "focus": ("--window-id",),
    "close": ("--window-id",),
}

# Output fragments meaning "this build does not know that command/flag"
COMPATIBILITY_MARKERS = (
    "unknown option",
    "unknown flag",
    "unknown command",
    "unknown subcommand",
    "unrecognized option",
    "unrecognised option",
    "unrecognized command",
    "invalid option",
    "no such option",
    "no such command",
    "mandatory option is not specified",
)


# ============================================================================
# Output parsing
# ============================================================================

def parse_windows(output: str) -> List[WindowRecord]:
    """Parse `list-windows --format WINDOW_FORMAT` output.

    Args:
        output: Raw stdout

    Returns:
        Window records in output order

    Raises:
        OutputParseError: If any non-blank line is malformed
    """
    expected = "<window-id>||<app-bundle-id>||<workspace>||<window-title>"
    windows: List[WindowRecord] = []

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        # Titles may themselves contain the separator
        fields = line.split(FIELD_SEPARATOR, 3)
        if len(fields) != 4:
            raise OutputParseError("Unexpected aerospace window output format.", line, expected)

        id_part, bundle_id, workspace, title = (f.strip() for f in fields)
        try:
            window_id = int(id_part)
        except ValueError:
            raise OutputParseError(f"Window id was not an integer: {id_part!r}", line, expected) from None

        windows.append(WindowRecord(
            window_id=window_id,
            app_bundle_id=bundle_id,
            workspace=workspace,
            title=title,
        ))

    return windows


def parse_workspace_summaries(output: str) -> List[WorkspaceSummary]:
    """Parse `list-workspaces --all --format WORKSPACE_FORMAT` output.

    Raises:
        OutputParseError: If a line lacks the separator or the focus flag is not true/false
    """
    expected = "<workspace>||<is-focused>"
    summaries: List[WorkspaceSummary] = []

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        fields = line.split(FIELD_SEPARATOR)
        if len(fields) != 2:
            raise OutputParseError("Unexpected aerospace workspace output format.", line, expected)

        workspace = fields[0].strip()
        focus_token = fields[1].strip().lower()
        if focus_token == "true":
            is_focused = True
        elif focus_token == "false":
            is_focused = False
        else:
            raise OutputParseError(f"Unexpected workspace focus value: {focus_token!r}", line, expected)

        summaries.append(WorkspaceSummary(workspace=workspace, is_focused=is_focused))

    return summaries


def parse_workspace_names(output: str) -> List[str]:
    """Parse plain `list-workspaces` output (one name per line)."""
    return [line.strip() for line in output.splitlines() if line.strip()]


def needs_compatibility_fallback(result: CommandResult) -> bool:
    """True when a failed command looks like an unsupported command or flag."""
    if result.ok:
        return False
    combined = f"{result.stderr}\n{result.stdout}".lower()
    return any(marker in combined for marker in COMPATIBILITY_MARKERS)


# ============================================================================
# Client
# ============================================================================

class AeroSpaceClient:
    """Async client for the AeroSpace command line interface."""

    def __init__(
        self,
        runner: CommandRunner,
        breaker: CircuitBreaker,
        executable: str = "aerospace",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize client.

        Args:
            runner: Command runner used for every invocation
            breaker: Shared circuit breaker (one per process)
            executable: aerospace binary name or path
            timeout_seconds: Per-command timeout
        """
        self.runner = runner
        self.breaker = breaker
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Invocation helpers
    # ------------------------------------------------------------------

    async def _run(self, args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        """Run an aerospace subcommand through the circuit breaker."""
        timeout = self.timeout_seconds if timeout is None else timeout

        async def invoke() -> CommandResult:
            return await self.runner.run(self.executable, args, timeout=timeout)

        return await self.breaker.call(invoke)

    async def _run_checked(self, args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        """Run a subcommand and raise CommandFailedError on non-zero exit."""
        result = await self._run(args, timeout)
        if not result.ok:
            raise self._failure(args, result)
        return result

    def _failure(self, args: Sequence[str], result: CommandResult) -> CommandFailedError:
        return CommandFailedError(
            command=format_command(self.executable, args),
            exit_code=result.exit_code,
            stderr=result.stderr,
            stdout=result.stdout,
        )

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    async def list_workspaces(self) -> List[str]:
        """Names of all workspaces."""
        result = await self._run_checked(["list-workspaces", "--all"])
        return parse_workspace_names(result.stdout)

    async def focused_workspace(self) -> Optional[str]:
        """Name of the focused workspace, or None if AeroSpace reports none."""
        result = await self._run_checked(["list-workspaces", "--focused"])
        names = parse_workspace_names(result.stdout)
        return names[0] if names else None

    async def list_workspaces_with_focus(self) -> List[WorkspaceSummary]:
        """All workspaces with their focus flag, from a single query."""
        result = await self._run_checked(
            ["list-workspaces", "--all", "--format", WORKSPACE_FORMAT]
        )
        return parse_workspace_summaries(result.stdout)

    async def workspace_exists(self, name: str) -> bool:
        return name in await self.list_workspaces()

    async def workspace_state(self) -> WorkspaceState:
        """Open and active project ids derived from `ap-` workspaces."""
        open_ids = set()
        active_id: Optional[str] = None
        for summary in await self.list_workspaces_with_focus():
            project_id = project_id_from_workspace(summary.workspace)
            if project_id is None:
                continue
            open_ids.add(project_id)
            if summary.is_focused and active_id is None:
                active_id = project_id
        return WorkspaceState(active_project_id=active_id, open_project_ids=open_ids)

    async def focus_workspace(self, name: str) -> None:
        """Focus a workspace, pulling it to the current monitor when supported.

        Uses `summon-workspace`, falling back to `workspace` on builds that
        do not have it.
        """
        name = name.strip()
        if not name:
            raise ApError(ErrorCode.WORKSPACE_NOT_FOCUSED, "Workspace name cannot be empty")

        summon_args = ["summon-workspace", name]
        result = await self._run(summon_args)
        if result.ok:
            return
        if not needs_compatibility_fallback(result):
            raise self._failure(summon_args, result)

        logger.info(f"summon-workspace unsupported, falling back to 'workspace {name}'")
        await self._run_checked(["workspace", name])

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    async def list_windows(self, workspace: str, app_bundle_id: Optional[str] = None) -> List[WindowRecord]:
        """Windows in one workspace, optionally filtered by bundle id."""
        args = ["list-windows", "--workspace", workspace]
        if app_bundle_id:
            args += ["--app-bundle-id", app_bundle_id]
        args += ["--format", WINDOW_FORMAT]
        result = await self._run_checked(args)
        return parse_windows(result.stdout)

    async def list_windows_on_monitor(
        self,
        monitor: str = "focused",
        app_bundle_id: Optional[str] = None,
    ) -> List[WindowRecord]:
        """Windows on a monitor (`focused`, `all`, or a monitor id)."""
        args = ["list-windows", "--monitor", monitor]
        if app_bundle_id:
            args += ["--app-bundle-id", app_bundle_id]
        args += ["--format", WINDOW_FORMAT]
        result = await self._run_checked(args)
        return parse_windows(result.stdout)

    async def list_windows_all(self, app_bundle_id: Optional[str] = None) -> List[WindowRecord]:
        """Windows across every monitor and workspace."""
        return await self.list_windows_on_monitor("all", app_bundle_id)

    async def list_windows_for_app(self, bundle_id: str) -> List[WindowRecord]:
        """Every window of one application, wherever it is."""
        return await self.list_windows_all(app_bundle_id=bundle_id)

    async def list_windows_focused(self) -> List[WindowRecord]:
        """The focused window as a (possibly empty) list."""
        result = await self._run_checked(["list-windows", "--focused", "--format", WINDOW_FORMAT])
        return parse_windows(result.stdout)

    async def focused_window(self) -> Optional[WindowRecord]:
        """The focused window, or None when nothing is focused."""
        windows = await self.list_windows_focused()
        return windows[0] if windows else None

    async def move_window_to_workspace(
        self,
        window_id: int,
        workspace: str,
        focus_follows: bool = False,
    ) -> None:
        """Move a window into a workspace.

        Args:
            window_id: AeroSpace window id
            workspace: Destination workspace
            focus_follows: Ask AeroSpace to move focus with the window (falls
                back to a plain move on builds without the flag)

        Raises:
            ApError: moveFailed when AeroSpace rejects the move
        """
        plain_args = ["move-node-to-workspace", "--window-id", str(window_id), workspace]

        if focus_follows:
            follow_args = ["move-node-to-workspace", "--focus-follows-window",
                           "--window-id", str(window_id), workspace]
            result = await self._run(follow_args)
            if result.ok:
                return
            if not needs_compatibility_fallback(result):
                raise self._move_failed(window_id, workspace, self._failure(follow_args, result))
            logger.info("--focus-follows-window unsupported, retrying plain move")

        result = await self._run(plain_args)
        if not result.ok:
            raise self._move_failed(window_id, workspace, self._failure(plain_args, result))
        logger.debug(f"Moved window {window_id} to {workspace}")

    def _move_failed(self, window_id: int, workspace: str, error: CommandFailedError) -> ApError:
        context = dict(error.context)
        context.update({"window_id": window_id, "workspace": workspace})
        return ApError(
            code=ErrorCode.MOVE_FAILED,
            message=f"Failed to move window {window_id} to {workspace}: {error.message}",
            context=context,
        )

    async def focus_window(self, window_id: int) -> None:
        await self._run_checked(["focus", "--window-id", str(window_id)])

    async def close_window(self, window_id: int) -> None:
        await self._run_checked(["close", "--window-id", str(window_id)])

    async def reload_config(self) -> None:
        await self._run_checked(["reload-config"])

    # ------------------------------------------------------------------
    # Compatibility
    # ------------------------------------------------------------------

    async def check_compatibility(self) -> None:
        """Verify every required subcommand advertises its required flags.

        Raises:
            ApError: aeroSpaceIncompatible listing every failure, sorted
        """
        failures: List[str] = []

        for command, flags in REQUIRED_FLAGS.items():
            try:
                result = await self._run([command, "--help"], timeout=HELP_TIMEOUT_SECONDS)
            except ApError as e:
                failures.append(f"{command}: {e.message}")
                continue

            if not result.ok:
                failures.append(f"{command}: --help failed with exit code {result.exit_code}")
                continue

            help_text = f"{result.stdout}\n{result.stderr}"
            missing = [flag for flag in flags if flag not in help_text]
            if missing:
                failures.append(f"{command}: missing {', '.join(missing)}")

        if failures:
            logger.error(f"aerospace compatibility check failed: {failures}")
            raise incompatible(failures)

        logger.info("aerospace compatibility check passed")
