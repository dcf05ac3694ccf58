"""Application launchers.

Each launcher opens one new window for a project, tagged with the project's
`AP:<id>` token through the application's own window-naming mechanism:

- VS Code: a generated `.code-workspace` file whose `window.title` setting
  starts with the token.
- Chrome: the `--window-name` flag.

Launchers only start the application; finding the resulting window is the
WindowLocator's job.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.command_runner import CommandRunner, format_command
from ..core.config import ChromeSettings, DataPaths
from ..errors import ApError, CommandFailedError, ErrorCode
from ..models.project import Project
from .chrome_tabs import ChromeTabStore

logger = logging.getLogger(__name__)

VSCODE_BUNDLE_ID = "com.microsoft.VSCode"
CHROME_BUNDLE_ID = "com.google.Chrome"

VSCODE_APP_NAME = "Visual Studio Code"
CHROME_APP_NAME = "Google Chrome"

LAUNCH_TIMEOUT_SECONDS = 10.0

BLANK_PAGE = "about:blank"

WINDOW_TITLE_SUFFIX = " - ${dirty}${activeEditorShort}${separator}${rootName}${separator}${appName}"


class AppLauncher(ABC):
    """Opens a new tagged window for a project."""

    bundle_id: str

    @abstractmethod
    async def launch(self, project: Project, plain: bool = False) -> None:
        """Start the application with a window tagged for `project`.

        Args:
            project: Project to open a window for
            plain: Leave out optional extras (such as tabs) that may make the launch fail

        Raises:
            ApError: commandFailed if the launch command fails
        """

    def has_launch_extras(self, project: Project) -> bool:
        """Whether a plain launch would differ from a normal one."""
        return False


async def run_open(runner: CommandRunner, args: Sequence[str]) -> None:
    """Run macOS `open` and raise CommandFailedError on non-zero exit."""
    result = await runner.run("open", args, timeout=LAUNCH_TIMEOUT_SECONDS)
    if not result.ok:
        raise CommandFailedError(
            command=format_command("open", args),
            exit_code=result.exit_code,
            stderr=result.stderr,
            stdout=result.stdout,
        )


# ============================================================================
# VS Code colour customizations
# ============================================================================

def _hex_to_rgb(color: str) -> Tuple[int, int, int]:
    value = color.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def _rgb_to_hex(rgb: Tuple[float, float, float]) -> str:
    return "#" + "".join(f"{max(0, min(255, int(round(c)))):02X}" for c in rgb)


def darken(color: str, amount: float) -> str:
    """Blend towards black by `amount` (0..1)."""
    return _rgb_to_hex(tuple(c * (1 - amount) for c in _hex_to_rgb(color)))


def lighten(color: str, amount: float) -> str:
    """Blend towards white by `amount` (0..1)."""
    return _rgb_to_hex(tuple(c + (255 - c) * amount for c in _hex_to_rgb(color)))


def relative_luminance(color: str) -> float:
    """WCAG relative luminance of a `#RRGGBB` colour."""
    def channel(value: int) -> float:
        c = value / 255
        return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4

    r, g, b = (channel(v) for v in _hex_to_rgb(color))
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def foreground_for(color: str) -> str:
    return "#15202B" if relative_luminance(color) > 0.5 else "#E7E7E7"


def color_customizations(color: str) -> Dict[str, str]:
    """Title bar, activity bar and status bar colours for a project colour."""
    foreground = foreground_for(color)
    inactive = darken(color, 0.2)
    badge = lighten(color, 0.4) if relative_luminance(color) < 0.5 else darken(color, 0.4)
    return {
        "activityBar.background": color,
        "activityBar.foreground": foreground,
        "activityBarBadge.background": badge,
        "activityBarBadge.foreground": foreground_for(badge),
        "statusBar.background": color,
        "statusBar.foreground": foreground,
        "titleBar.activeBackground": color,
        "titleBar.activeForeground": foreground,
        "titleBar.inactiveBackground": inactive,
        "titleBar.inactiveForeground": foreground_for(inactive),
    }


# ============================================================================
# Launchers
# ============================================================================

class EditorLauncher(AppLauncher):
    """Opens VS Code on a generated, token-titled workspace file."""

    bundle_id = VSCODE_BUNDLE_ID

    def __init__(self, runner: CommandRunner, paths: DataPaths):
        self.runner = runner
        self.paths = paths

    def workspace_document(self, project: Project) -> Dict[str, Any]:
        """Contents of the project's `.code-workspace` file."""
        document: Dict[str, Any] = {
            "settings": {
                "window.title": f"{project.token.value}{WINDOW_TITLE_SUFFIX}",
                "workbench.colorCustomizations": color_customizations(project.color),
            },
        }
        if project.remote:
            document["folders"] = [{"uri": f"vscode-remote://ssh-remote+{project.remote}{project.path}"}]
            document["remoteAuthority"] = f"ssh-remote+{project.remote}"
        else:
            document["folders"] = [{"path": project.path}]
        return document

    def write_workspace_file(self, project: Project) -> Path:
        """Write the workspace file and return its path.

        Raises:
            ApError: commandFailed if the file cannot be written
        """
        path = self.paths.vscode_workspace_file(project.id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump(self.workspace_document(project), f, indent=2, sort_keys=True)
                f.write("\n")
        except OSError as e:
            raise ApError(
                code=ErrorCode.COMMAND_FAILED,
                message=f"Failed to write VS Code workspace file: {e}",
                context={"path": str(path)}
            ) from e
        return path

    async def launch(self, project: Project, plain: bool = False) -> None:
        path = self.write_workspace_file(project)
        logger.info(f"Opening VS Code workspace {path}")
        await run_open(self.runner, ["-a", VSCODE_APP_NAME, str(path)])


def collect_tab_urls(project: Project, chrome: Optional[ChromeSettings] = None) -> List[str]:
    """URLs for a new browser window, de-duplicated in order.

    Global pinned, global default, project pinned, then project default
    tabs; `about:blank` when nothing is configured.
    """
    chrome = chrome or ChromeSettings()
    urls: List[str] = []
    for url in [
        *chrome.pinned_tabs,
        *chrome.default_tabs,
        *project.chrome_pinned_tabs,
        *project.chrome_default_tabs,
    ]:
        url = url.strip()
        if url and url not in urls:
            urls.append(url)
    return urls or [BLANK_PAGE]


class BrowserLauncher(AppLauncher):
    """Opens a new Chrome window named with the project token.

    The window starts with the tabs saved when the project was last closed,
    or with the configured tabs when there is no snapshot.
    """

    bundle_id = CHROME_BUNDLE_ID

    def __init__(
        self,
        runner: CommandRunner,
        chrome: Optional[ChromeSettings] = None,
        tab_store: Optional[ChromeTabStore] = None,
    ):
        self.runner = runner
        self.chrome = chrome or ChromeSettings()
        self.tab_store = tab_store

    def initial_urls(self, project: Project) -> List[str]:
        """Saved tab URLs verbatim, else the configured tabs."""
        if self.tab_store is not None:
            try:
                snapshot = self.tab_store.load(project.id)
            except ApError as e:
                logger.warning(f"Ignoring saved tabs for {project.id}: {e.message}")
                snapshot = None
            if snapshot is not None:
                logger.debug(f"Restoring {len(snapshot.urls)} saved tabs for {project.id}")
                return list(snapshot.urls)
        return collect_tab_urls(project, self.chrome)

    def has_launch_extras(self, project: Project) -> bool:
        return self.initial_urls(project) != [BLANK_PAGE]

    def launch_args(self, project: Project, plain: bool = False) -> List[str]:
        return [
            "-n", "-a", CHROME_APP_NAME, "--args",
            "--new-window",
            f"--window-name={project.token.value}",
            *([] if plain else self.initial_urls(project)),
        ]

    async def launch(self, project: Project, plain: bool = False) -> None:
        logger.info(f"Opening Chrome window {project.token}{' without tabs' if plain else ''}")
        await run_open(self.runner, self.launch_args(project, plain))
