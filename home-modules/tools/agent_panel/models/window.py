"""Window and workspace records parsed from AeroSpace output."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Set


WORKSPACE_PREFIX = "ap-"
WINDOW_TOKEN_PREFIX = "AP:"

# Characters besides letters and digits that may continue a project id
ID_CONTINUATION_CHARS = "_-"


class Role(Enum):
    """Window roles each project owns exactly one of."""
    EDITOR = "editor"
    BROWSER = "browser"


@dataclass(frozen=True)
class WindowRecord:
    """One line of `aerospace list-windows --format` output.

    Never cached across orchestration steps; always re-queried.
    """
    window_id: int
    app_bundle_id: str
    workspace: str
    title: str


@dataclass(frozen=True)
class WorkspaceSummary:
    """Workspace name with its focus flag."""
    workspace: str
    is_focused: bool


@dataclass(frozen=True)
class WorkspaceState:
    """Open and active projects derived from workspace names."""
    active_project_id: Optional[str] = None
    open_project_ids: Set[str] = field(default_factory=set)


def workspace_name(project_id: str) -> str:
    """Workspace owned by a project (`ap-<id>`)."""
    return f"{WORKSPACE_PREFIX}{project_id}"


def project_id_from_workspace(workspace: str) -> Optional[str]:
    """Inverse of workspace_name; None for non-project workspaces."""
    if not workspace.startswith(WORKSPACE_PREFIX):
        return None
    project_id = workspace[len(WORKSPACE_PREFIX):]
    return project_id or None


def is_project_workspace(workspace: str) -> bool:
    return workspace.startswith(WORKSPACE_PREFIX)


@dataclass(frozen=True)
class WindowToken:
    """Title tag claiming a window for a project (`AP:<id>`).

    A title matches when the tag occurs and is followed by the end of the
    title or by a character that cannot continue a project id (anything but
    a letter, digit, underscore or hyphen), so `AP:demo` does not claim
    `AP:demo-2 - main.py`.
    """
    project_id: str

    def __post_init__(self):
        if not self.project_id:
            raise ValueError("project_id must not be empty")

    @property
    def value(self) -> str:
        return f"{WINDOW_TOKEN_PREFIX}{self.project_id}"

    def matches(self, title: str) -> bool:
        token = self.value
        start = title.find(token)
        while start != -1:
            end = start + len(token)
            if end == len(title):
                return True
            following = title[end]
            if not following.isalnum() and following not in ID_CONTINUATION_CHARS:
                return True
            start = title.find(token, end)
        return False

    def __str__(self) -> str:
        return self.value
