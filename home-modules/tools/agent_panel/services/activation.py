"""Project activation.

Drives one project to its activated state:

    resolve config -> capture focus -> confirm workspace focus
    -> locate editor + browser -> re-confirm focus after moves
    -> apply layout (first activation only) -> focus editor

Steps run strictly in that order; each relies on the previous step's
postcondition. Activating an already-active project only re-confirms
focus: windows are found in stage 1, nothing is launched or moved, and
the layout is left alone so user-resized windows stay where they are.

The layout is the one saved when the project was last closed on the same
kind of display, or the computed split when nothing was saved.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from ..core.config import Config
from ..errors import ApError, CircuitOpenError, CommandTimeoutError, ErrorCode
from ..models.focus import FocusEntry, FocusKind
from ..models.geometry import DisplayMode, Rect
from ..models.project import Project
from ..models.results import ActivationResult, ActivationWarning
from ..models.window import Role, is_project_workspace
from .focus_stack import FocusStack, utc_now
from .launchers import AppLauncher
from .layout_engine import clamp_to_screen, compute_layout, denormalize, detect_display_mode
from .polling import CancellationToken, Clock, PollSchedule, Sleeper, check_cancelled, poll
from .screen import ScreenMetricsProvider, WindowPositioner
from .window_locator import LocatedWindow, WindowLocator
from .window_positions import SavedWindowFrames, WindowPositionStore

logger = logging.getLogger(__name__)

# Locate failures that a launch without extras (restored tabs) may get past
RETRYABLE_LAUNCH_CODES = frozenset({ErrorCode.REQUIRED_WINDOW_MISSING, ErrorCode.COMMAND_FAILED})


class ActivationOrchestrator:
    """Activates projects: one editor, one browser, one workspace."""

    def __init__(
        self,
        config: Config,
        client,
        locator: WindowLocator,
        editor_launcher: AppLauncher,
        browser_launcher: AppLauncher,
        focus_stack: Optional[FocusStack] = None,
        screen: Optional[ScreenMetricsProvider] = None,
        positioner: Optional[WindowPositioner] = None,
        position_store: Optional[WindowPositionStore] = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ):
        """Initialize orchestrator.

        Args:
            config: Configuration snapshot
            client: AeroSpaceClient sharing the process-wide circuit breaker
            locator: Window locator built on the same client
            editor_launcher: Opens tagged editor windows
            browser_launcher: Opens tagged browser windows
            focus_stack: Where non-project focus is saved (None disables capture)
            screen: Display metrics for layout (None disables layout)
            positioner: Applies computed frames (None disables layout)
            position_store: Frames saved at close, preferred over the computed layout
            clock: Monotonic time source for polling
            sleep: Async sleep for polling
            now: Wall clock for focus entry timestamps
        """
        self.config = config
        self.client = client
        self.locator = locator
        self.editor_launcher = editor_launcher
        self.browser_launcher = browser_launcher
        self.focus_stack = focus_stack
        self.screen = screen
        self.positioner = positioner
        self.position_store = position_store
        self._clock = clock
        self._sleep = sleep
        self._now = now

    async def activate(
        self,
        project_id: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> ActivationResult:
        """Activate a project.

        Args:
            project_id: Configured project id
            cancellation: Optional flag to abandon the activation between steps

        Returns:
            ActivationResult with bound window ids and non-fatal warnings

        Raises:
            ApError: projectNotFound, workspaceNotFocused, workspaceNotFocusedAfterMove,
                requiredWindowMissing, moveFailed, commandFailed or cancelled
        """
        start = time.perf_counter()
        project = self.config.get_project(project_id)
        warnings: List[ActivationWarning] = []
        logger.info(f"Activating project {project.id} ({project.workspace})")

        await self._capture_focus(warnings)
        check_cancelled(cancellation, "capturing focus")

        await self.ensure_workspace_focused(project.workspace, cancellation)

        existing_editor = await self.locator.find_existing(Role.EDITOR, project, self.editor_launcher.bundle_id)
        existing_browser = await self.locator.find_existing(Role.BROWSER, project, self.browser_launcher.bundle_id)
        first_activation = existing_editor is None and existing_browser is None

        editor, browser = await self._locate_windows(project, existing_editor, existing_browser, cancellation)
        warnings.extend(editor.warnings)
        warnings.extend(browser.warnings)

        if editor.moved or browser.moved:
            await self._confirm_focus_after_move(project.workspace)

        layout_applied = False
        if first_activation:
            check_cancelled(cancellation, "applying layout")
            layout_applied = await self._apply_layout(project, warnings)
        else:
            logger.debug("Windows were already bound; keeping the current layout")

        check_cancelled(cancellation, "focusing editor")
        await self.client.focus_window(editor.window_id)

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Activated {project.id}: editor={editor.window_id} browser={browser.window_id} "
            f"layout={'applied' if layout_applied else 'kept'} ({elapsed_ms:.0f}ms)"
        )
        return ActivationResult(
            project_id=project.id,
            workspace=project.workspace,
            editor_window_id=editor.window_id,
            browser_window_id=browser.window_id,
            layout_applied=layout_applied,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Focus capture
    # ------------------------------------------------------------------

    async def capture_focus(self) -> Optional[FocusEntry]:
        """Focused window as a focus entry, or None if it belongs to a project."""
        focused = await self.client.focused_window()
        if focused is None or is_project_workspace(focused.workspace):
            return None
        return FocusEntry(
            kind=FocusKind.WINDOW,
            window_id=focused.window_id,
            app_bundle_id=focused.app_bundle_id,
            workspace=focused.workspace,
            captured_at=self._now(),
        )

    async def _capture_focus(self, warnings: List[ActivationWarning]) -> None:
        if self.focus_stack is None:
            return

        try:
            entry = await self.capture_focus()
        except (CommandTimeoutError, CircuitOpenError):
            raise
        except ApError as e:
            logger.warning(f"Could not capture focus before activation: {e.message}")
            return

        if entry is None:
            logger.debug("Focus is already in a project workspace; nothing to save")
            return

        try:
            if self.focus_stack.push(entry):
                logger.debug(f"Saved focus {entry.identity} from workspace {entry.workspace!r}")
        except ApError as e:
            logger.warning(f"Focus history not saved: {e.message}")
            warnings.append(ActivationWarning.from_error(e))

    # ------------------------------------------------------------------
    # Workspace focus
    # ------------------------------------------------------------------

    async def ensure_workspace_focused(
        self,
        workspace: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        """Focus `workspace` and wait until AeroSpace reports it focused.

        Raises:
            ApError: workspaceNotFocused if it is not focused before the deadline
        """
        if await self.client.focused_workspace() == workspace:
            logger.debug(f"Workspace {workspace} already focused")
            return

        logger.info(f"Focusing workspace {workspace}")
        await self.client.focus_workspace(workspace)

        last_seen: List[Optional[str]] = [None]

        async def attempt() -> Optional[bool]:
            try:
                focused = await self.client.focused_workspace()
            except CommandTimeoutError:
                return None
            last_seen[0] = focused
            return True if focused == workspace else None

        polling = self.config.polling
        confirmed = await poll(
            attempt,
            timeout=polling.workspace_focus_timeout_ms / 1000,
            schedule=PollSchedule(steady_interval=polling.interval_ms / 1000),
            clock=self._clock,
            sleep=self._sleep,
            cancellation=cancellation,
            stage="confirming workspace focus",
        )
        if not confirmed:
            raise ApError(
                code=ErrorCode.WORKSPACE_NOT_FOCUSED,
                message=f"Workspace {workspace} did not become focused",
                suggestion="Check AeroSpace is running and responsive",
                context={"workspace": workspace, "focused": last_seen[0]}
            )

    async def _confirm_focus_after_move(self, workspace: str) -> None:
        focused = await self.client.focused_workspace()
        if focused != workspace:
            raise ApError(
                code=ErrorCode.WORKSPACE_NOT_FOCUSED_AFTER_MOVE,
                message=f"Focus left {workspace} while moving windows into it",
                suggestion="Run the activation again",
                context={"workspace": workspace, "focused": focused}
            )

    # ------------------------------------------------------------------
    # Window binding
    # ------------------------------------------------------------------

    async def _locate_windows(
        self,
        project: Project,
        existing_editor: Optional[LocatedWindow],
        existing_browser: Optional[LocatedWindow],
        cancellation: Optional[CancellationToken],
    ) -> Tuple[LocatedWindow, LocatedWindow]:
        """Locate both roles concurrently; editor errors surface first."""

        async def locate(role: Role, launcher: AppLauncher, existing: Optional[LocatedWindow]) -> LocatedWindow:
            if existing is not None:
                return existing
            return await self._locate_with_retry(role, project, launcher, cancellation)

        browser_task = asyncio.ensure_future(locate(Role.BROWSER, self.browser_launcher, existing_browser))
        try:
            editor = await locate(Role.EDITOR, self.editor_launcher, existing_editor)
        except BaseException:
            browser_task.cancel()
            await asyncio.gather(browser_task, return_exceptions=True)
            raise

        browser = await browser_task
        return editor, browser

    async def _locate_with_retry(
        self,
        role: Role,
        project: Project,
        launcher: AppLauncher,
        cancellation: Optional[CancellationToken],
    ) -> LocatedWindow:
        """Locate a role's window; if a launch with extras fails, try once more without them."""

        def launch(plain: bool):
            async def run() -> None:
                await launcher.launch(project, plain=plain)
            return run

        try:
            return await self.locator.locate(role, project, launcher.bundle_id, launch(False), cancellation)
        except (CommandTimeoutError, CircuitOpenError):
            raise
        except ApError as e:
            if e.code not in RETRYABLE_LAUNCH_CODES or not launcher.has_launch_extras(project):
                raise
            first_error = e

        logger.warning(f"{role.value} launch failed ({first_error.message}); retrying without tabs")
        located = await self.locator.locate(role, project, launcher.bundle_id, launch(True), cancellation)
        located.warnings.append(ActivationWarning(
            code=first_error.code,
            message=f"Launched {role.value} without tabs after the first launch failed: {first_error.message}",
            context={**first_error.context, "role": role.value, "retried_without_tabs": True},
        ))
        return located

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _saved_frames(
        self,
        project: Project,
        mode: DisplayMode,
        warnings: List[ActivationWarning],
    ) -> Optional[SavedWindowFrames]:
        if self.position_store is None:
            return None
        try:
            return self.position_store.load(project.id, mode)
        except ApError as e:
            logger.warning(f"Ignoring saved window positions: {e.message}")
            warnings.append(ActivationWarning.from_error(e))
            return None

    async def _apply_layout(self, project: Project, warnings: List[ActivationWarning]) -> bool:
        """Position both windows; problems become warnings, never failures.

        Saved frames win over the computed layout, role by role, and are
        clamped to the current visible frame.
        """
        if self.screen is None or self.positioner is None:
            logger.debug("No screen metrics or positioner configured; skipping layout")
            return False

        try:
            metrics = await self.screen.main_display()
        except ApError as e:
            logger.warning(f"Skipping layout: {e.message}")
            warnings.append(ActivationWarning.from_error(e, ErrorCode.SCREEN_METRICS_UNAVAILABLE))
            return False

        layout = self.config.layout
        mode = detect_display_mode(metrics.pixel_width, layout.ultrawide_min_width_px)
        visible = metrics.visible_frame

        frames: Dict[Role, Rect] = {}
        saved = self._saved_frames(project, mode, warnings)
        if saved is not None:
            frames[Role.EDITOR] = saved.editor
            if saved.browser is not None:
                frames[Role.BROWSER] = saved.browser

        if len(frames) < 2:
            inches = metrics.physical_width_inches or layout.display_width_inches
            try:
                rects = compute_layout(mode, visible, [Role.EDITOR, Role.BROWSER], layout, inches)
            except ValueError as e:
                logger.warning(f"Skipping layout: {e}")
                warnings.append(ActivationWarning(
                    code=ErrorCode.LAYOUT_FAILED,
                    message=f"Could not compute layout: {e}",
                    context={"mode": mode.value},
                ))
                return False
            for role, rect in rects.items():
                frames.setdefault(role, denormalize(rect, visible))

        source = "saved" if saved is not None else "computed"
        logger.info(f"Applying {source} {mode.value} layout ({metrics.pixel_width}px display)")
        applied = True
        for role, launcher in ((Role.EDITOR, self.editor_launcher), (Role.BROWSER, self.browser_launcher)):
            frame = clamp_to_screen(frames[role], visible)
            try:
                await self.positioner.set_frame(launcher.bundle_id, project.token.value, frame)
            except ApError as e:
                logger.warning(f"Could not position {role.value} window: {e.message}")
                warnings.append(ActivationWarning.from_error(e, ErrorCode.RESIZE_FAILED))
                applied = False
        return applied
