"""Project close and focus restoration.

Closing empties a project workspace (always from a fresh listing, never a
remembered binding) and puts the user back in the most recent non-project
context. When the focus history has nothing usable, focus falls back to a
non-project workspace chosen deterministically:

1. the first non-project workspace that has windows
2. else the first non-project workspace
3. else the configured `focus.fallback_workspace`

Before any window is closed, the project's browser tabs and window frames
are saved so the next activation can restore them.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..core.command_runner import CommandRunner
from ..core.config import Config
from ..errors import ApError, CircuitOpenError, CommandTimeoutError, ErrorCode
from ..models.focus import FocusEntry, FocusKind
from ..models.project import Project
from ..models.results import ActivationWarning, CloseResult, FocusRestoreResult
from ..models.window import is_project_workspace
from .chrome_tabs import ChromeTabCapture, ChromeTabSnapshot, ChromeTabStore
from .focus_stack import FocusStack, utc_now
from .window_positions import WindowPositionRecorder

logger = logging.getLogger(__name__)

APP_ACTIVATE_TIMEOUT_SECONDS = 5.0


class CloseOrchestrator:
    """Closes project windows and restores prior focus."""

    def __init__(
        self,
        config: Config,
        client,
        runner: CommandRunner,
        focus_stack: Optional[FocusStack] = None,
        positions: Optional[WindowPositionRecorder] = None,
        tab_capture: Optional[ChromeTabCapture] = None,
        tab_store: Optional[ChromeTabStore] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        """Initialize orchestrator.

        Args:
            config: Configuration snapshot
            client: AeroSpaceClient sharing the process-wide circuit breaker
            runner: Runner used to re-activate applications (`open -b`)
            focus_stack: Focus history to restore from (None: always fall back)
            positions: Saves window frames before closing (None disables)
            tab_capture: Reads browser tab URLs before closing (None disables)
            tab_store: Where captured tab URLs are kept for the next launch
            now: Wall clock for snapshot timestamps
        """
        self.config = config
        self.client = client
        self.runner = runner
        self.focus_stack = focus_stack
        self.positions = positions
        self.tab_capture = tab_capture
        self.tab_store = tab_store
        self._now = now

    async def close(self, project_id: str) -> CloseResult:
        """Close every window in the project's workspace.

        Browser tabs and window frames are saved first, for the next
        activation. Those saves and per-window close failures are recorded
        as warnings; the remaining windows are still closed.

        Raises:
            ApError: projectNotFound, or commandFailed if the workspace cannot be listed
        """
        project = self.config.get_project(project_id)
        logger.info(f"Closing project {project.id} ({project.workspace})")

        warnings: List[ActivationWarning] = []
        await self.save_tabs(project, warnings)
        await self.save_window_positions(project, warnings)

        windows = await self.client.list_windows(project.workspace)
        closed: List[int] = []

        for window in sorted(windows, key=lambda w: w.window_id):
            try:
                await self.client.close_window(window.window_id)
            except ApError as e:
                logger.warning(f"Failed to close window {window.window_id}: {e.message}")
                warnings.append(ActivationWarning.from_error(e))
                continue
            closed.append(window.window_id)

        logger.info(f"Closed {len(closed)}/{len(windows)} windows in {project.workspace}")

        restore = await self.restore_focus()
        return CloseResult(
            project_id=project.id,
            workspace=project.workspace,
            closed_window_ids=closed,
            restored_focus=restore.restored_focus,
            fallback_workspace=restore.fallback_workspace,
            warnings=warnings + restore.warnings,
        )

    # ------------------------------------------------------------------
    # State saved for the next activation
    # ------------------------------------------------------------------

    async def save_tabs(self, project: Project, warnings: List[ActivationWarning]) -> None:
        """Snapshot the project's browser tabs; no open window clears the snapshot.

        A failed capture keeps the previous snapshot.
        """
        if self.tab_capture is None or self.tab_store is None:
            return

        try:
            urls = await self.tab_capture.capture(project.token.value)
        except ApError as e:
            logger.warning(f"Could not capture browser tabs for {project.id}: {e.message}")
            warnings.append(ActivationWarning.from_error(e))
            return

        try:
            if urls:
                self.tab_store.save(project.id, ChromeTabSnapshot(urls=urls, captured_at=self._now()))
                logger.info(f"Saved {len(urls)} browser tabs for {project.id}")
            else:
                self.tab_store.delete(project.id)
                logger.debug(f"No browser window for {project.id}; cleared saved tabs")
        except ApError as e:
            logger.warning(f"Browser tabs not saved: {e.message}")
            warnings.append(ActivationWarning.from_error(e))

    async def save_window_positions(self, project: Project, warnings: List[ActivationWarning]) -> None:
        if self.positions is None:
            return
        try:
            await self.positions.capture(project)
        except ApError as e:
            logger.warning(f"Window positions not saved: {e.message}")
            warnings.append(ActivationWarning.from_error(e))

    # ------------------------------------------------------------------
    # Focus restoration
    # ------------------------------------------------------------------

    async def refocus(self, entry: FocusEntry) -> bool:
        """Try to bring a focus entry back; False if it no longer exists.

        Raises:
            CircuitOpenError, CommandTimeoutError: If AeroSpace is unresponsive
                (the entry is not judged)
        """
        if entry.kind is FocusKind.WINDOW:
            try:
                await self.client.focus_window(entry.window_id)
            except (CircuitOpenError, CommandTimeoutError):
                raise
            except ApError as e:
                logger.debug(f"Window {entry.window_id} cannot be focused: {e.message}")
                return False
            return True

        try:
            result = await self.runner.run("open", ["-b", entry.app_bundle_id], timeout=APP_ACTIVATE_TIMEOUT_SECONDS)
        except ApError as e:
            logger.debug(f"App {entry.app_bundle_id} cannot be activated: {e.message}")
            return False
        return result.ok

    async def pop_focus(self) -> Optional[FocusEntry]:
        """Pop and re-focus the most recent usable entry.

        Raises:
            ApError: stateSaveFailed, or CircuitOpenError/CommandTimeoutError from
                refocusing (the entry then stays on the stack)
        """
        if self.focus_stack is None:
            return None
        entry = await self.focus_stack.pop_first_valid(self.refocus)
        if entry is not None:
            logger.info(f"Restored focus to {entry.kind.value} {entry.identity}")
        return entry

    async def restore_focus(self) -> FocusRestoreResult:
        """Restore previous non-project focus, falling back to a workspace."""
        warnings: List[ActivationWarning] = []

        try:
            entry = await self.pop_focus()
        except (CircuitOpenError, CommandTimeoutError):
            raise
        except ApError as e:
            logger.warning(f"Focus history unavailable: {e.message}")
            warnings.append(ActivationWarning.from_error(e))
            entry = None

        if entry is not None:
            return FocusRestoreResult(restored_focus=entry, warnings=warnings)

        workspace = await self.choose_fallback_workspace(warnings)
        try:
            await self.client.focus_workspace(workspace)
        except ApError as e:
            logger.warning(f"Failed to focus fallback workspace {workspace}: {e.message}")
            warnings.append(ActivationWarning.from_error(e, ErrorCode.WORKSPACE_NOT_FOCUSED))
        else:
            logger.info(f"Focused fallback workspace {workspace}")

        return FocusRestoreResult(fallback_workspace=workspace, warnings=warnings)

    async def choose_fallback_workspace(self, warnings: List[ActivationWarning]) -> str:
        reserved = self.config.focus.fallback_workspace
        try:
            workspaces = await self.client.list_workspaces()
            occupied = {w.workspace for w in await self.client.list_windows_all()}
        except CircuitOpenError:
            raise
        except ApError as e:
            logger.warning(f"Could not inspect workspaces, using {reserved}: {e.message}")
            warnings.append(ActivationWarning.from_error(e))
            return reserved

        candidates = [name for name in workspaces if not is_project_workspace(name)]
        for name in candidates:
            if name in occupied:
                return name
        if candidates:
            return candidates[0]
        return reserved
