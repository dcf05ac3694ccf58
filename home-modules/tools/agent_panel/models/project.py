"""Project model with validation.

Projects are loaded once per command from config.toml and treated as an
immutable snapshot for the rest of the activation.
"""

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .window import WindowToken, workspace_name


RESERVED_PROJECT_IDS = frozenset({"inbox"})

NAMED_COLORS: Dict[str, str] = {
    "black": "#000000",
    "blue": "#0000FF",
    "brown": "#A52A2A",
    "cyan": "#00FFFF",
    "gray": "#808080",
    "grey": "#808080",
    "green": "#008000",
    "indigo": "#4B0082",
    "orange": "#FFA500",
    "pink": "#FFC0CB",
    "purple": "#800080",
    "red": "#FF0000",
    "teal": "#008080",
    "white": "#FFFFFF",
    "yellow": "#FFFF00",
}

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def normalize_project_id(value: str) -> str:
    """Derive a project id from a display name.

    Lowercases, collapses every run of characters outside [a-z0-9] into a
    single hyphen and trims leading/trailing hyphens.

    Examples:
        >>> normalize_project_id("  My Cool_Project! ")
        'my-cool-project'
    """
    normalized = re.sub(r"[^a-z0-9]+", "-", value.strip().lower())
    return normalized.strip("-")


def resolve_color(value: str) -> Optional[str]:
    """Resolve a hex or named colour to upper-case `#RRGGBB`, or None."""
    trimmed = value.strip()
    if _HEX_COLOR.match(trimmed):
        return trimmed.upper()
    return NAMED_COLORS.get(trimmed.lower())


class Project(BaseModel):
    """A project that owns one editor window, one browser window and one workspace."""

    id: str = Field(..., description="Slug used for the workspace name and window tag")
    name: str = Field(..., min_length=1, description="Display name")
    path: str = Field(..., min_length=1, description="Project directory (remote path for SSH projects)")
    color: str = Field("#007ACC", description="Hex colour for the editor chrome")
    remote: Optional[str] = Field(None, description="SSH authority, e.g. user@host")
    chrome_pinned_tabs: List[str] = Field(default_factory=list)
    chrome_default_tabs: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Ids must already be normalized and not reserved."""
        if not v or normalize_project_id(v) != v:
            raise ValueError(f"Invalid project id '{v}' (use lowercase letters, digits and hyphens)")
        if v in RESERVED_PROJECT_IDS:
            raise ValueError(f"Project id '{v}' is reserved")
        return v

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        resolved = resolve_color(v)
        if resolved is None:
            raise ValueError(f"Invalid color '{v}' (use #RRGGBB or one of: {', '.join(sorted(NAMED_COLORS))})")
        return resolved

    @field_validator("remote")
    @classmethod
    def validate_remote(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            return None
        if any(ch.isspace() for ch in v) or "/" in v:
            raise ValueError(f"Invalid SSH authority '{v}'")
        return v

    @property
    def workspace(self) -> str:
        """AeroSpace workspace owned by this project."""
        return workspace_name(self.id)

    @property
    def token(self) -> WindowToken:
        """Title tag claiming windows for this project."""
        return WindowToken(self.id)

    @property
    def is_remote(self) -> bool:
        return self.remote is not None
