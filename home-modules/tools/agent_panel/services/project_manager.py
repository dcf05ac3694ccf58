"""Project manager facade.

Wires one CommandRunner, one CircuitBreaker and one AeroSpaceClient into the
activation and close orchestrators. The breaker is constructed here, once,
and injected everywhere so every caller in the process shares it.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from ..core.aerospace_client import AeroSpaceClient
from ..core.circuit_breaker import CircuitBreaker
from ..core.command_runner import CommandRunner
from ..core.config import Config, DataPaths
from ..errors import ApError, ErrorCode
from ..models.focus import FocusEntry
from ..models.project import Project
from ..models.results import ActivationResult, ActivationWarning, CloseResult, FocusRestoreResult
from ..models.window import Role, WorkspaceState
from .activation import ActivationOrchestrator
from .chrome_tabs import ChromeTabCapture, ChromeTabStore
from .close import CloseOrchestrator
from .focus_stack import FocusHistoryStore, FocusStack
from .launchers import BrowserLauncher, EditorLauncher
from .polling import CancellationToken
from .screen import AppleScriptWindowPositioner, SystemProfilerScreenMetrics
from .window_locator import LocatorTimeouts, WindowLocator
from .window_positions import WindowPositionRecorder, WindowPositionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectStatus:
    """A configured project with its live workspace state."""
    project: Project
    is_open: bool
    is_active: bool


def open_focus_stack(config: Config, paths: DataPaths) -> FocusStack:
    """Focus stack backed by the history file; starts empty if the file is unreadable."""
    store = FocusHistoryStore(paths.focus_history_file)
    max_age = timedelta(hours=config.focus.max_age_hours)
    try:
        return FocusStack.open(store, max_depth=config.focus.max_depth, max_age=max_age)
    except ApError as e:
        logger.warning(f"{e.message}; starting with empty focus history")
        return FocusStack(max_depth=config.focus.max_depth, max_age=max_age, store=store)


class ProjectManager:
    """Entry point for activating, closing and navigating projects."""

    def __init__(
        self,
        config: Config,
        client: AeroSpaceClient,
        activation: ActivationOrchestrator,
        closer: CloseOrchestrator,
        focus_stack: Optional[FocusStack] = None,
    ):
        self.config = config
        self.client = client
        self.activation = activation
        self.closer = closer
        self.focus_stack = focus_stack

    @classmethod
    def create(
        cls,
        config: Config,
        paths: Optional[DataPaths] = None,
        runner: Optional[CommandRunner] = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> "ProjectManager":
        """Build the production object graph.

        Args:
            config: Configuration snapshot
            paths: Data locations (default: AGENT_PANEL_DATA_DIR or ~/.local/share/agent-panel)
            runner: Command runner (default: a new CommandRunner)
            breaker: Shared breaker (default: a new one with the configured cooldown)
        """
        paths = paths or DataPaths()
        runner = runner or CommandRunner(default_timeout=config.aerospace.timeout_seconds)
        breaker = breaker or CircuitBreaker(cooldown_seconds=config.aerospace.breaker_cooldown_seconds)
        client = AeroSpaceClient(
            runner,
            breaker,
            executable=config.aerospace.executable,
            timeout_seconds=config.aerospace.timeout_seconds,
        )

        polling = config.polling
        locator = WindowLocator(
            client,
            LocatorTimeouts(
                interval_ms=polling.interval_ms,
                timeout_ms=polling.timeout_ms,
                workspace_probe_ms=polling.workspace_probe_ms,
                focused_probe_ms=polling.focused_probe_ms,
            ),
            global_scan_roles=frozenset(Role(r) for r in polling.global_scan_roles),
        )
        focus_stack = open_focus_stack(config, paths)
        screen = SystemProfilerScreenMetrics(runner, config.layout.display_width_inches)
        positioner = AppleScriptWindowPositioner(runner)
        position_store = WindowPositionStore(paths.window_layouts_file)
        tab_store = ChromeTabStore(paths.chrome_tabs_dir)

        activation = ActivationOrchestrator(
            config,
            client,
            locator,
            editor_launcher=EditorLauncher(runner, paths),
            browser_launcher=BrowserLauncher(runner, config.chrome, tab_store),
            focus_stack=focus_stack,
            screen=screen,
            positioner=positioner,
            position_store=position_store,
        )
        closer = CloseOrchestrator(
            config,
            client,
            runner,
            focus_stack,
            positions=WindowPositionRecorder(position_store, screen, positioner, config.layout),
            tab_capture=ChromeTabCapture(runner),
            tab_store=tab_store,
        )
        return cls(config, client, activation, closer, focus_stack)

    async def activate(
        self,
        project_id: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> ActivationResult:
        return await self.activation.activate(project_id, cancellation)

    async def close(self, project_id: str) -> CloseResult:
        return await self.closer.close(project_id)

    async def focus_stack_pop(self) -> Optional[FocusEntry]:
        """Restore and return the most recent usable non-project focus."""
        return await self.closer.pop_focus()

    async def exit_to_non_project(self) -> FocusRestoreResult:
        """Leave the active project without closing it.

        The project's window frames are saved first, as on close.

        Raises:
            ApError: workspaceNotFocused if no project workspace is focused
        """
        state = await self.client.workspace_state()
        if state.active_project_id is None:
            raise ApError(
                code=ErrorCode.WORKSPACE_NOT_FOCUSED,
                message="No project is active",
                suggestion="Focus a project workspace first, or use 'ap return'",
            )
        logger.info(f"Leaving project {state.active_project_id}")

        warnings: List[ActivationWarning] = []
        try:
            project = self.config.get_project(state.active_project_id)
        except ApError as e:
            logger.debug(f"Not saving window positions: {e.message}")
        else:
            await self.closer.save_window_positions(project, warnings)

        result = await self.closer.restore_focus()
        return result.model_copy(update={"warnings": warnings + result.warnings})

    async def move_window_to_project(self, window_id: int, project_id: str) -> None:
        """Move a window into a project's workspace.

        Raises:
            ApError: projectNotFound or moveFailed
        """
        project = self.config.get_project(project_id)
        await self.client.move_window_to_workspace(window_id, project.workspace)
        logger.info(f"Moved window {window_id} to {project.workspace}")

    async def workspace_state(self) -> WorkspaceState:
        return await self.client.workspace_state()

    async def project_statuses(self) -> List[ProjectStatus]:
        """Configured projects in config order, with open/active flags."""
        state = await self.workspace_state()
        return [
            ProjectStatus(
                project=project,
                is_open=project.id in state.open_project_ids,
                is_active=project.id == state.active_project_id,
            )
            for project in self.config.projects
        ]

    async def check_compatibility(self) -> None:
        await self.client.check_compatibility()

    def focus_history(self) -> List[FocusEntry]:
        """Focus entries, most recent first."""
        if self.focus_stack is None:
            return []
        return list(reversed(self.focus_stack.entries()))
