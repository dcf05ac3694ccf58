"""Window locator.

Finds a project's editor or browser window by its title token in stages,
stopping at the first that succeeds:

1. Scoped query: windows in the project workspace with the role's bundle id
   and the project token.
2. Launch the application.
3. Short workspace poll: re-run the scoped query for a sub-second budget.
4. Focused-window recovery: poll the focused window (fast, then steady) and
   accept it only if bundle id and token match; move it into the workspace.
5. Global scan (browser only by default): one listing across all workspaces,
   ignoring windows that matched before the launch.

When several windows match, the lowest window id wins and an ambiguity
warning is recorded. If nothing matches, requiredWindowMissing is raised.
The locator holds no state between calls.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from ..errors import CommandFailedError, CommandTimeoutError, OutputParseError, required_window_missing
from ..models.project import Project
from ..models.results import ActivationWarning
from ..models.window import Role, WindowRecord
from .polling import CancellationToken, Clock, PollSchedule, Sleeper, check_cancelled, poll

logger = logging.getLogger(__name__)

Launch = Callable[[], Awaitable[None]]


class LocatorStage(Enum):
    """Stage that produced a window."""
    SCOPED = "scoped"
    WORKSPACE_POLL = "workspace_poll"
    FOCUSED = "focused"
    GLOBAL_SCAN = "global_scan"


@dataclass(frozen=True)
class LocatorTimeouts:
    """Detection budgets in milliseconds."""
    interval_ms: int = 200
    timeout_ms: int = 5000
    workspace_probe_ms: int = 800
    focused_probe_ms: int = 1500

    def __post_init__(self):
        for name in ("interval_ms", "timeout_ms", "workspace_probe_ms", "focused_probe_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    def budgets(self) -> Tuple[int, int, int]:
        """Split the overall timeout into (workspace, focused primary, focused secondary) ms."""
        workspace_ms = min(self.workspace_probe_ms, max(1, self.timeout_ms // 2))
        remaining_ms = max(0, self.timeout_ms - workspace_ms)
        focused_primary_ms = min(self.focused_probe_ms, remaining_ms)
        focused_secondary_ms = max(0, remaining_ms - focused_primary_ms)
        return workspace_ms, focused_primary_ms, focused_secondary_ms

    @property
    def steady_interval(self) -> float:
        return self.interval_ms / 1000

    @property
    def fast_interval(self) -> float:
        return max(1, self.interval_ms // 2) / 1000


@dataclass
class LocatedWindow:
    """A window bound to a role, with how it was found."""
    window: WindowRecord
    stage: LocatorStage
    launched: bool = False
    moved: bool = False
    warnings: List[ActivationWarning] = field(default_factory=list)

    @property
    def window_id(self) -> int:
        return self.window.window_id


def select_lowest(
    matches: Iterable[WindowRecord],
    role: Role,
    workspace: str,
) -> Tuple[WindowRecord, Optional[ActivationWarning]]:
    """Pick the lowest window id; warn if there was more than one candidate.

    Window ids are assigned monotonically, so the choice is stable across
    repeated enumerations regardless of listing order.
    """
    ordered = sorted(matches, key=lambda w: w.window_id)
    if not ordered:
        raise ValueError("matches must not be empty")

    chosen = ordered[0]
    if len(ordered) == 1:
        return chosen, None

    extra_ids = [w.window_id for w in ordered[1:]]
    logger.warning(
        f"Multiple {role.value} windows match in {workspace}: "
        f"choosing {chosen.window_id}, ignoring {extra_ids}"
    )
    return chosen, ActivationWarning.ambiguous(role.value, workspace, chosen.window_id, extra_ids)


class WindowLocator:
    """Staged, token-based window discovery."""

    def __init__(
        self,
        client,
        timeouts: LocatorTimeouts = LocatorTimeouts(),
        global_scan_roles: AbstractSet[Role] = frozenset({Role.BROWSER}),
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ):
        """Initialize locator.

        Args:
            client: AeroSpaceClient (or a compatible test double)
            timeouts: Detection budgets
            global_scan_roles: Roles allowed to fall back to the all-workspace scan
            clock: Monotonic time source
            sleep: Async sleep function
        """
        self.client = client
        self.timeouts = timeouts
        self.global_scan_roles = frozenset(global_scan_roles)
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _scoped_matches(self, project: Project, bundle_id: str) -> List[WindowRecord]:
        windows = await self.client.list_windows(project.workspace, app_bundle_id=bundle_id)
        return [
            w for w in windows
            if w.app_bundle_id == bundle_id and project.token.matches(w.title)
        ]

    async def _global_matches(self, project: Project, bundle_id: str) -> List[WindowRecord]:
        windows = await self.client.list_windows_all(app_bundle_id=bundle_id)
        return [
            w for w in windows
            if w.app_bundle_id == bundle_id and project.token.matches(w.title)
        ]

    async def _move_into_workspace(self, window: WindowRecord, project: Project) -> bool:
        if window.workspace == project.workspace:
            return False
        logger.info(f"Moving window {window.window_id} from {window.workspace!r} to {project.workspace}")
        await self.client.move_window_to_workspace(window.window_id, project.workspace)
        return True

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def find_existing(self, role: Role, project: Project, bundle_id: str) -> Optional[LocatedWindow]:
        """Stage 1 only: an already-open tagged window in the project workspace."""
        matches = await self._scoped_matches(project, bundle_id)
        if not matches:
            logger.debug(f"No existing {role.value} window for {project.token} in {project.workspace}")
            return None

        chosen, warning = select_lowest(matches, role, project.workspace)
        logger.info(f"Found existing {role.value} window {chosen.window_id} in {project.workspace}")
        return LocatedWindow(
            window=chosen,
            stage=LocatorStage.SCOPED,
            warnings=[warning] if warning else [],
        )

    async def locate(
        self,
        role: Role,
        project: Project,
        bundle_id: str,
        launch: Launch,
        cancellation: Optional[CancellationToken] = None,
    ) -> LocatedWindow:
        """Find the role's window, launching the application if needed.

        Args:
            role: Editor or browser
            project: Project whose token and workspace to use
            bundle_id: Application bundle id for the role
            launch: Coroutine function that opens a new tagged window
            cancellation: Optional cancellation flag

        Returns:
            LocatedWindow describing the bound window

        Raises:
            ApError: requiredWindowMissing, cancelled, moveFailed, or a
                command error from the window manager
        """
        check_cancelled(cancellation, f"locating {role.value}")

        existing = await self.find_existing(role, project, bundle_id)
        if existing is not None:
            return existing

        check_cancelled(cancellation, f"launching {role.value}")

        before_ids: Set[int] = set()
        if role in self.global_scan_roles:
            before_ids = {w.window_id for w in await self._global_matches(project, bundle_id)}
            if before_ids:
                logger.debug(f"Ignoring pre-existing {role.value} windows {sorted(before_ids)} after launch")

        logger.info(f"Launching {role.value} for project {project.id}")
        await launch()

        located = await self._detect_after_launch(role, project, bundle_id, before_ids, cancellation)
        if located is None:
            logger.error(f"{role.value} window {project.token} not detected after launch")
            raise required_window_missing(role.value, project.token.value, project.workspace)

        located.launched = True
        logger.info(
            f"Detected {role.value} window {located.window_id} via {located.stage.value}"
            + (" (moved)" if located.moved else "")
        )
        return located

    async def _detect_after_launch(
        self,
        role: Role,
        project: Project,
        bundle_id: str,
        before_ids: Set[int],
        cancellation: Optional[CancellationToken],
    ) -> Optional[LocatedWindow]:
        workspace_ms, focused_primary_ms, focused_secondary_ms = self.timeouts.budgets()
        warnings: List[ActivationWarning] = []

        # Stage 3: short workspace poll
        async def workspace_attempt() -> Optional[WindowRecord]:
            try:
                matches = await self._scoped_matches(project, bundle_id)
            except CommandTimeoutError:
                return None
            fresh = [w for w in matches if w.window_id not in before_ids]
            if not fresh:
                return None
            chosen, warning = select_lowest(fresh, role, project.workspace)
            if warning:
                warnings.append(warning)
            return chosen

        window = await poll(
            workspace_attempt,
            timeout=workspace_ms / 1000,
            schedule=PollSchedule(
                steady_interval=self.timeouts.steady_interval,
                initial_intervals=(self.timeouts.fast_interval,),
            ),
            clock=self._clock,
            sleep=self._sleep,
            cancellation=cancellation,
            stage=f"{role.value} workspace poll",
        )
        if window is not None:
            return LocatedWindow(window=window, stage=LocatorStage.WORKSPACE_POLL, warnings=warnings)

        # Stage 4: focused-window recovery
        async def focused_attempt() -> Optional[WindowRecord]:
            try:
                focused = await self.client.focused_window()
            except (CommandTimeoutError, CommandFailedError, OutputParseError):
                return None
            if focused is None:
                return None
            if focused.app_bundle_id != bundle_id or not project.token.matches(focused.title):
                return None
            return focused

        for budget_ms, interval in (
            (focused_primary_ms, self.timeouts.fast_interval),
            (focused_secondary_ms, self.timeouts.steady_interval),
        ):
            window = await poll(
                focused_attempt,
                timeout=budget_ms / 1000,
                schedule=PollSchedule(steady_interval=interval),
                clock=self._clock,
                sleep=self._sleep,
                cancellation=cancellation,
                stage=f"{role.value} focused probe",
            )
            if window is not None:
                moved = await self._move_into_workspace(window, project)
                return LocatedWindow(window=window, stage=LocatorStage.FOCUSED, moved=moved, warnings=warnings)

        # Stage 5: last-resort global scan
        if role not in self.global_scan_roles:
            return None

        check_cancelled(cancellation, f"{role.value} global scan")
        matches = [
            w for w in await self._global_matches(project, bundle_id)
            if w.window_id not in before_ids
        ]
        if not matches:
            return None

        window, warning = select_lowest(matches, role, "all")
        if warning:
            warnings.append(warning)
        moved = await self._move_into_workspace(window, project)
        return LocatedWindow(window=window, stage=LocatorStage.GLOBAL_SCAN, moved=moved, warnings=warnings)
