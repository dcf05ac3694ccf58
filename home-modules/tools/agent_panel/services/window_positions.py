"""Saved window frames per project and display mode.

When a project is closed or exited, the editor and browser frames are read
back and stored under the current display mode, so the next activation on
the same kind of display puts the windows where the user left them instead
of at the computed layout. Frames are stored as points in the same top-left
coordinate space the positioner uses.

File layout (`state/window-layouts.json`):

    {"version": 1,
     "projects": {"demo": {"wide": {"editor": {"x": 0, ...},
                                    "browser": {"x": 1280, ...} | null}}}}
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.config import LayoutSettings
from ..core.state_files import malformed, read_json, write_json_atomic
from ..errors import ApError, ErrorCode
from ..models.geometry import DisplayMode, Rect
from ..models.project import Project
from .launchers import CHROME_BUNDLE_ID, VSCODE_BUNDLE_ID
from .layout_engine import detect_display_mode
from .screen import ScreenMetricsProvider, WindowPositioner

logger = logging.getLogger(__name__)

LAYOUTS_VERSION = 1


def rect_to_dict(rect: Rect) -> Dict[str, float]:
    return {"x": rect.x, "y": rect.y, "width": rect.width, "height": rect.height}


def rect_from_dict(data: Dict[str, Any]) -> Rect:
    """Raises KeyError, ValueError or TypeError on malformed data."""
    rect = Rect(float(data["x"]), float(data["y"]), float(data["width"]), float(data["height"]))
    if rect.width <= 0 or rect.height <= 0:
        raise ValueError(f"non-positive size {rect.width}x{rect.height}")
    return rect


@dataclass(frozen=True)
class SavedWindowFrames:
    """Editor and (when it was open) browser frame for one display mode."""
    editor: Rect
    browser: Optional[Rect] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "editor": rect_to_dict(self.editor),
            "browser": rect_to_dict(self.browser) if self.browser else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedWindowFrames":
        browser = data.get("browser")
        return cls(
            editor=rect_from_dict(data["editor"]),
            browser=rect_from_dict(browser) if browser is not None else None,
        )


class WindowPositionStore:
    """JSON persistence for saved frames, keyed by project id and display mode."""

    def __init__(self, path: Path):
        self.path = path

    def _load_projects(self) -> Dict[str, Any]:
        data = read_json(self.path, "window layouts")
        if data is None:
            return {}
        if not isinstance(data, dict) or data.get("version") != LAYOUTS_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            raise ApError(
                code=ErrorCode.STATE_LOAD_FAILED,
                message=f"Unsupported window layouts version: {version!r}",
                suggestion=f"Delete {self.path} to forget saved window positions",
                context={"path": str(self.path)}
            )
        projects = data.get("projects", {})
        if not isinstance(projects, dict) or not all(isinstance(v, dict) for v in projects.values()):
            raise malformed(self.path, "window layouts", "projects must map ids to objects")
        return projects

    def load(self, project_id: str, mode: DisplayMode) -> Optional[SavedWindowFrames]:
        """Saved frames for a project in a display mode.

        Returns:
            The frames, or None if nothing was saved

        Raises:
            ApError: stateLoadFailed if the file is unreadable or malformed
        """
        entry = self._load_projects().get(project_id, {}).get(mode.value)
        if entry is None:
            return None
        try:
            return SavedWindowFrames.from_dict(entry)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise malformed(self.path, "window layout", f"{project_id}/{mode.value}: {e}") from e

    def save(self, project_id: str, mode: DisplayMode, frames: SavedWindowFrames) -> None:
        """Record frames, keeping other projects and modes.

        A corrupt existing file is not overwritten.

        Raises:
            ApError: stateLoadFailed if the existing file is corrupt, stateSaveFailed on write errors
        """
        projects = self._load_projects()
        projects.setdefault(project_id, {})[mode.value] = frames.to_dict()
        write_json_atomic(self.path, {"version": LAYOUTS_VERSION, "projects": projects}, "window layouts")
        logger.debug(f"Saved {mode.value} frames for {project_id}")


class WindowPositionRecorder:
    """Reads a project's window frames back and stores them for its next activation."""

    def __init__(
        self,
        store: WindowPositionStore,
        screen: ScreenMetricsProvider,
        positioner: WindowPositioner,
        layout: Optional[LayoutSettings] = None,
        editor_bundle_id: str = VSCODE_BUNDLE_ID,
        browser_bundle_id: str = CHROME_BUNDLE_ID,
    ):
        self.store = store
        self.screen = screen
        self.positioner = positioner
        self.layout = layout or LayoutSettings()
        self.editor_bundle_id = editor_bundle_id
        self.browser_bundle_id = browser_bundle_id

    async def capture(self, project: Project) -> Optional[SavedWindowFrames]:
        """Read and save the project's current frames.

        Unreadable frames or display metrics skip the save; only the store
        write can fail.

        Returns:
            What was saved, or None if nothing could be read

        Raises:
            ApError: stateLoadFailed or stateSaveFailed from the store
        """
        token = project.token.value
        try:
            metrics = await self.screen.main_display()
            editor = await self.positioner.get_frame(self.editor_bundle_id, token)
        except ApError as e:
            logger.info(f"Not saving window positions for {project.id}: {e.message}")
            return None

        try:
            browser: Optional[Rect] = await self.positioner.get_frame(self.browser_bundle_id, token)
        except ApError as e:
            logger.debug(f"No browser frame for {project.id}: {e.message}")
            browser = None

        mode = detect_display_mode(metrics.pixel_width, self.layout.ultrawide_min_width_px)
        frames = SavedWindowFrames(editor=editor, browser=browser)
        self.store.save(project.id, mode, frames)
        logger.info(f"Saved {mode.value} window positions for {project.id}")
        return frames
