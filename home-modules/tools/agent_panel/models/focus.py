"""Focus history entries for returning to non-project context."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


class FocusKind(Enum):
    """What a focus entry restores."""
    WINDOW = "window"
    APP = "app"


@dataclass(frozen=True)
class FocusEntry:
    """Snapshot of a non-project focus target.

    Entries are never mutated; the stack only pushes, pops and prunes them.
    """
    kind: FocusKind
    app_bundle_id: str
    workspace: str
    captured_at: datetime
    window_id: Optional[int] = None

    def __post_init__(self):
        if self.kind is FocusKind.WINDOW and self.window_id is None:
            raise ValueError("window focus entries need a window_id")

    @property
    def identity(self) -> Union[int, str]:
        """Window id for window entries, bundle id for app entries."""
        if self.kind is FocusKind.WINDOW:
            return self.window_id
        return self.app_bundle_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "window_id": self.window_id,
            "app_bundle_id": self.app_bundle_id,
            "workspace": self.workspace,
            "captured_at": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FocusEntry":
        """Build an entry from persisted JSON.

        Raises:
            KeyError, ValueError, TypeError: If the data is malformed
        """
        window_id = data.get("window_id")
        captured_at = datetime.fromisoformat(data["captured_at"])
        if captured_at.tzinfo is None:
            captured_at = captured_at.replace(tzinfo=timezone.utc)
        return cls(
            kind=FocusKind(data["kind"]),
            window_id=int(window_id) if window_id is not None else None,
            app_bundle_id=str(data["app_bundle_id"]),
            workspace=str(data["workspace"]),
            captured_at=captured_at,
        )
