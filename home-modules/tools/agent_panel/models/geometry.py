"""Screen geometry types used by the layout engine.

Coordinates use a top-left origin, matching what System Events expects for
window position and size.
"""

from dataclasses import dataclass
from enum import Enum


class DisplayMode(Enum):
    """Layout mode chosen from the main display's pixel width."""
    COMPACT = "compact"
    WIDE = "wide"


@dataclass(frozen=True)
class Rect:
    """Rectangle in screen points."""
    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2


@dataclass(frozen=True)
class NormalizedRect:
    """Rectangle expressed as fractions of a visible frame.

    Raises:
        ValueError: If any component is outside [0, 1] or the rect overflows the frame
    """
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        for name in ("x", "y", "width", "height"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name}={value} is outside [0, 1]")
        # Tolerate float noise from fraction arithmetic
        if self.x + self.width > 1.0 + 1e-9:
            raise ValueError(f"x + width = {self.x + self.width} exceeds 1")
        if self.y + self.height > 1.0 + 1e-9:
            raise ValueError(f"y + height = {self.y + self.height} exceeds 1")


@dataclass(frozen=True)
class ScreenMetrics:
    """Main display measurements needed to pick and apply a layout."""
    pixel_width: int
    visible_frame: Rect
    physical_width_inches: float = 0.0
