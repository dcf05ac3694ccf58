"""Window layout engine.

Pure geometry: maps (display mode, visible frame, roles) to normalized
rectangles. Nothing here reads or writes window state; the activation
orchestrator applies the results through a WindowPositioner.

Compact mode maximizes every window. Wide mode places the editor and
browser side by side, top aligned, with a bounded gap, pinned to one edge
of the screen.
"""

import logging
from typing import Dict, Iterable, Optional

from ..core.config import IdePosition, Justification, LayoutSettings
from ..models.geometry import DisplayMode, NormalizedRect, Rect
from ..models.window import Role

logger = logging.getLogger(__name__)

DEFAULT_ULTRAWIDE_MIN_WIDTH_PX = 5000

FULL_FRAME = NormalizedRect(0.0, 0.0, 1.0, 1.0)


def detect_display_mode(pixel_width: int, ultrawide_min_width_px: int = DEFAULT_ULTRAWIDE_MIN_WIDTH_PX) -> DisplayMode:
    """Wide at or above the pixel-width threshold, compact below it."""
    if pixel_width >= ultrawide_min_width_px:
        return DisplayMode.WIDE
    return DisplayMode.COMPACT


def compute_layout(
    mode: DisplayMode,
    visible_frame: Rect,
    roles: Iterable[Role],
    config: Optional[LayoutSettings] = None,
    physical_width_inches: Optional[float] = None,
) -> Dict[Role, NormalizedRect]:
    """Compute target rects for each role as fractions of the visible frame.

    Args:
        mode: Display mode from detect_display_mode()
        visible_frame: Main display frame minus menu bar and dock, in points
        roles: Roles to place
        config: Wide-mode tuning (defaults to LayoutSettings())
        physical_width_inches: Display width in inches, used to cap window
            width at `max_window_width`; None or <= 0 means unknown

    Returns:
        Mapping of role to normalized rect (top-left origin)

    Raises:
        ValueError: If the visible frame has no area
    """
    if visible_frame.width <= 0 or visible_frame.height <= 0:
        raise ValueError(f"Visible frame has no area: {visible_frame}")

    roles = list(dict.fromkeys(roles))
    if mode is DisplayMode.COMPACT:
        return {role: FULL_FRAME for role in roles}

    config = config or LayoutSettings()
    positions = _wide_positions(visible_frame.width, config, physical_width_inches)
    return {role: positions[role] for role in roles}


def _wide_positions(
    screen_width: float,
    config: LayoutSettings,
    physical_width_inches: Optional[float],
) -> Dict[Role, NormalizedRect]:
    height = config.window_height / 100.0

    # Work in points so the inch cap and the gap share one unit
    width = screen_width * 0.5
    if physical_width_inches and physical_width_inches > 0:
        points_per_inch = screen_width / physical_width_inches
        width = min(width, config.max_window_width * points_per_inch)

    max_gap = screen_width * config.max_gap / 100.0
    remaining = screen_width - 2 * width
    gap = min(max_gap, max(0.0, remaining))
    if remaining < 0:
        width = screen_width / 2
        gap = 0.0

    if config.justification is Justification.RIGHT:
        right_x = screen_width - width
        left_x = right_x - gap - width
    else:
        left_x = 0.0
        right_x = width + gap

    if config.ide_position is IdePosition.LEFT:
        editor_x, browser_x = left_x, right_x
    else:
        editor_x, browser_x = right_x, left_x

    fraction = width / screen_width
    return {
        Role.EDITOR: NormalizedRect(_unit(editor_x / screen_width), 0.0, fraction, height),
        Role.BROWSER: NormalizedRect(_unit(browser_x / screen_width), 0.0, fraction, height),
    }


def _unit(value: float) -> float:
    """Snap float noise at the edges of [0, 1]."""
    return min(1.0, max(0.0, value))


def denormalize(rect: NormalizedRect, frame: Rect) -> Rect:
    """Convert a normalized rect into points within `frame`."""
    return Rect(
        x=frame.x + rect.x * frame.width,
        y=frame.y + rect.y * frame.height,
        width=rect.width * frame.width,
        height=rect.height * frame.height,
    )


def clamp_to_screen(frame: Rect, visible_frame: Rect) -> Rect:
    """Fit a frame inside the visible frame.

    Oversized frames are shrunk and centred; frames hanging over an edge
    are shifted back inside.
    """
    width = min(frame.width, visible_frame.width)
    height = min(frame.height, visible_frame.height)

    if width != frame.width or height != frame.height:
        x = visible_frame.mid_x - width / 2
        y = visible_frame.mid_y - height / 2
    else:
        x = frame.x
        y = frame.y

    if x < visible_frame.x:
        x = visible_frame.x
    if x + width > visible_frame.max_x:
        x = visible_frame.max_x - width
    if y < visible_frame.y:
        y = visible_frame.y
    if y + height > visible_frame.max_y:
        y = visible_frame.max_y - height

    return Rect(x=x, y=y, width=width, height=height)
