"""Screen metrics and window geometry application.

These are the only places that touch display hardware or window frames
outside the window manager. Both are abstract so tests can substitute
in-memory versions; the production implementations shell out to
`system_profiler` and `osascript`.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..core.command_runner import CommandRunner, format_command
from ..errors import ApError, CommandTimeoutError, ErrorCode
from ..models.geometry import Rect, ScreenMetrics

logger = logging.getLogger(__name__)

# Approximate height of the macOS menu bar in points
MENU_BAR_HEIGHT = 25.0

PROFILER_TIMEOUT_SECONDS = 5.0
OSASCRIPT_TIMEOUT_SECONDS = 5.0

_DIMENSIONS = re.compile(r"(\d+)\s*x\s*(\d+)")


class ScreenMetricsProvider(ABC):
    """Reports the main display's size."""

    @abstractmethod
    async def main_display(self) -> ScreenMetrics:
        """Measure the main display.

        Raises:
            ApError: screenMetricsUnavailable
        """


class WindowPositioner(ABC):
    """Reads and sets a window's frame, identified by application and title token."""

    @abstractmethod
    async def set_frame(self, app_bundle_id: str, token: str, frame: Rect) -> None:
        """Move and resize the first window of the app whose title carries `token`.

        Raises:
            ApError: resizeFailed
        """

    @abstractmethod
    async def get_frame(self, app_bundle_id: str, token: str) -> Rect:
        """Current frame of the first window of the app whose title carries `token`.

        Raises:
            ApError: layoutFailed
        """


def _metrics_unavailable(message: str, **context: Any) -> ApError:
    return ApError(
        code=ErrorCode.SCREEN_METRICS_UNAVAILABLE,
        message=message,
        suggestion="Layout was skipped; windows keep their current size",
        context=context,
    )


def _parse_dimensions(value: Any) -> Optional[List[int]]:
    if not isinstance(value, str):
        return None
    match = _DIMENSIONS.search(value)
    if not match:
        return None
    return [int(match.group(1)), int(match.group(2))]


def parse_display_profile(output: str, display_width_inches: Optional[float] = None) -> ScreenMetrics:
    """Extract main display metrics from `system_profiler SPDisplaysDataType -json`.

    Pixel width comes from `_spdisplays_pixels`; the point size from
    `_spdisplays_resolution` (falling back to pixels). The visible frame
    excludes the menu bar.

    Raises:
        ApError: screenMetricsUnavailable if the JSON has no usable display
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise _metrics_unavailable(f"system_profiler returned invalid JSON: {e}") from e

    gpus = data.get("SPDisplaysDataType", []) if isinstance(data, dict) else []
    displays: List[Dict[str, Any]] = []
    for gpu in gpus:
        if isinstance(gpu, dict):
            displays.extend(d for d in gpu.get("spdisplays_ndrvs", []) if isinstance(d, dict))

    if not displays:
        raise _metrics_unavailable("No displays reported by system_profiler")

    main = next(
        (d for d in displays if d.get("spdisplays_main") == "spdisplays_yes"),
        displays[0],
    )

    pixels = _parse_dimensions(main.get("_spdisplays_pixels"))
    points = _parse_dimensions(main.get("_spdisplays_resolution")) or pixels
    if pixels is None or points is None:
        raise _metrics_unavailable(
            "Main display resolution not reported",
            display=main.get("_name", "unknown"),
        )

    width, height = points
    visible_height = max(1.0, height - MENU_BAR_HEIGHT)
    return ScreenMetrics(
        pixel_width=pixels[0],
        visible_frame=Rect(x=0.0, y=MENU_BAR_HEIGHT, width=float(width), height=visible_height),
        physical_width_inches=display_width_inches or 0.0,
    )


class SystemProfilerScreenMetrics(ScreenMetricsProvider):
    """Reads display metrics with `system_profiler`."""

    def __init__(self, runner: CommandRunner, display_width_inches: Optional[float] = None):
        self.runner = runner
        self.display_width_inches = display_width_inches

    async def main_display(self) -> ScreenMetrics:
        args = ["SPDisplaysDataType", "-json"]
        try:
            result = await self.runner.run("system_profiler", args, timeout=PROFILER_TIMEOUT_SECONDS)
        except ApError as e:
            raise _metrics_unavailable(f"Failed to query displays: {e.message}", **e.context) from e

        if not result.ok:
            raise _metrics_unavailable(
                f"{format_command('system_profiler', args)} failed with exit code {result.exit_code}",
                stderr=result.stderr.strip(),
            )

        metrics = parse_display_profile(result.stdout, self.display_width_inches)
        logger.debug(f"Main display: {metrics.pixel_width}px wide, visible frame {metrics.visible_frame}")
        return metrics


# Characters accepted right after the token in AppleScript window matching.
# AppleScript has no regex, so this is a fixed subset of the boundaries
# WindowToken.matches accepts.
_APPLESCRIPT_TOKEN_BOUNDARIES = (" ", "]", ")", "|")


def _window_match_clause(token: str) -> str:
    """AppleScript `whose` clause for windows whose name carries `token` as a whole tag."""
    clauses = [f'name ends with "{token}"']
    clauses.extend(f'name contains "{token}{boundary}"' for boundary in _APPLESCRIPT_TOKEN_BOUNDARIES)
    return " or ".join(clauses)


def build_set_frame_script(app_bundle_id: str, token: str, frame: Rect) -> str:
    """AppleScript that positions the first window tagged with `token`."""
    x, y = int(round(frame.x)), int(round(frame.y))
    width, height = int(round(frame.width)), int(round(frame.height))
    return (
        'tell application "System Events"\n'
        f'  tell (first application process whose bundle identifier is "{app_bundle_id}")\n'
        f'    set targetWindow to first window whose ({_window_match_clause(token)})\n'
        f'    set position of targetWindow to {{{x}, {y}}}\n'
        f'    set size of targetWindow to {{{width}, {height}}}\n'
        '  end tell\n'
        'end tell'
    )


def build_get_frame_script(app_bundle_id: str, token: str) -> str:
    """AppleScript that prints `x,y,width,height` of the first window tagged with `token`."""
    return (
        'tell application "System Events"\n'
        f'  tell (first application process whose bundle identifier is "{app_bundle_id}")\n'
        f'    set targetWindow to first window whose ({_window_match_clause(token)})\n'
        '    set {posX, posY} to position of targetWindow\n'
        '    set {sizeW, sizeH} to size of targetWindow\n'
        '    return (posX as text) & "," & (posY as text) & "," & (sizeW as text) & "," & (sizeH as text)\n'
        '  end tell\n'
        'end tell'
    )


def parse_frame(output: str) -> Rect:
    """Parse `x,y,width,height` as printed by the get-frame script.

    Raises:
        ValueError: If the output is not four numbers or the size is not positive
    """
    parts = [part.strip() for part in output.strip().split(",")]
    if len(parts) != 4:
        raise ValueError(f"expected 4 numbers, got {output.strip()!r}")
    x, y, width, height = (float(part) for part in parts)
    if width <= 0 or height <= 0:
        raise ValueError(f"non-positive size {width}x{height}")
    return Rect(x, y, width, height)


class AppleScriptWindowPositioner(WindowPositioner):
    """Reads and applies frames through System Events (needs Accessibility permission)."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    async def _run_script(self, script: str, code: ErrorCode, action: str, context: Dict[str, Any]):
        token = context["token"]
        try:
            result = await self.runner.run("osascript", ["-e", script], timeout=OSASCRIPT_TIMEOUT_SECONDS)
        except CommandTimeoutError as e:
            raise ApError(
                code=code,
                message=f"Timed out {action} {token} window",
                context={**context, "timeout_seconds": e.timeout_seconds},
            ) from e
        except ApError as e:
            raise ApError(code, e.message, e.suggestion, {**context, **e.context}) from e

        if not result.ok:
            raise ApError(
                code=code,
                message=f"Failed {action} {token} window (exit code {result.exit_code})",
                suggestion="Grant Accessibility access to your terminal in System Settings > Privacy & Security",
                context={**context, "exit_code": result.exit_code, "stderr": result.stderr.strip()},
            )
        return result

    async def set_frame(self, app_bundle_id: str, token: str, frame: Rect) -> None:
        script = build_set_frame_script(app_bundle_id, token, frame)
        context = {"app_bundle_id": app_bundle_id, "token": token}
        await self._run_script(script, ErrorCode.RESIZE_FAILED, "resizing", context)
        logger.debug(f"Set {token} ({app_bundle_id}) frame to {frame}")

    async def get_frame(self, app_bundle_id: str, token: str) -> Rect:
        script = build_get_frame_script(app_bundle_id, token)
        context = {"app_bundle_id": app_bundle_id, "token": token}
        result = await self._run_script(script, ErrorCode.LAYOUT_FAILED, "reading", context)
        try:
            return parse_frame(result.stdout)
        except ValueError as e:
            raise ApError(
                code=ErrorCode.LAYOUT_FAILED,
                message=f"Unreadable frame for {token} window: {e}",
                context={**context, "stdout": result.stdout.strip()},
            ) from e
