"""Data models for Agent Panel."""

from .focus import FocusEntry, FocusKind
from .geometry import DisplayMode, NormalizedRect, Rect, ScreenMetrics
from .project import Project, normalize_project_id, resolve_color
from .results import ActivationResult, ActivationWarning, CloseResult, FocusRestoreResult
from .window import (
    WORKSPACE_PREFIX,
    Role,
    WindowRecord,
    WindowToken,
    WorkspaceState,
    WorkspaceSummary,
    is_project_workspace,
    project_id_from_workspace,
    workspace_name,
)

__all__ = [
    "ActivationResult",
    "ActivationWarning",
    "CloseResult",
    "DisplayMode",
    "FocusEntry",
    "FocusKind",
    "FocusRestoreResult",
    "NormalizedRect",
    "Project",
    "Rect",
    "Role",
    "ScreenMetrics",
    "WORKSPACE_PREFIX",
    "WindowRecord",
    "WindowToken",
    "WorkspaceState",
    "WorkspaceSummary",
    "is_project_workspace",
    "normalize_project_id",
    "project_id_from_workspace",
    "resolve_color",
    "workspace_name",
]
