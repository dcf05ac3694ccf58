"""Configuration loading for Agent Panel.

Reads config.toml with tomllib and validates it into pydantic models. The
result is a read-only snapshot; commands load it once and pass it down.

Example config.toml:

    [layout]
    window_height = 90
    justification = "right"

    [chrome]
    pinned_tabs = ["https://mail.example.com"]

    [[project]]
    name = "Demo"
    path = "~/src/demo"
    color = "teal"
"""

import logging
import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..errors import ApError, ErrorCode, project_not_found
from ..models.project import Project, normalize_project_id

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AGENT_PANEL_CONFIG"
DATA_DIR_ENV_VAR = "AGENT_PANEL_DATA_DIR"


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config/agent-panel/config.toml"


def default_data_dir() -> Path:
    override = os.environ.get(DATA_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local/share/agent-panel"


class DataPaths:
    """Locations of generated files and persisted state."""

    def __init__(self, root: Optional[Path] = None):
        self.root = root or default_data_dir()

    @property
    def vscode_workspace_dir(self) -> Path:
        return self.root / "vscode"

    def vscode_workspace_file(self, project_id: str) -> Path:
        return self.vscode_workspace_dir / f"{project_id}.code-workspace"

    @property
    def state_dir(self) -> Path:
        return self.root / "state"

    @property
    def focus_history_file(self) -> Path:
        return self.state_dir / "focus-history.json"

    @property
    def window_layouts_file(self) -> Path:
        return self.state_dir / "window-layouts.json"

    @property
    def chrome_tabs_dir(self) -> Path:
        return self.state_dir / "chrome-tabs"


class IdePosition(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class Justification(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class AeroSpaceSettings(BaseModel):
    executable: str = "aerospace"
    timeout_seconds: float = Field(5.0, gt=0)
    breaker_cooldown_seconds: float = Field(30.0, gt=0)


class PollingSettings(BaseModel):
    """Window detection budgets in milliseconds."""
    interval_ms: int = Field(200, gt=0)
    timeout_ms: int = Field(5000, gt=0)
    workspace_probe_ms: int = Field(800, gt=0)
    focused_probe_ms: int = Field(1500, gt=0)
    workspace_focus_timeout_ms: int = Field(5000, gt=0)
    global_scan_roles: List[str] = Field(default_factory=lambda: ["browser"])

    @field_validator("global_scan_roles")
    @classmethod
    def validate_roles(cls, v: List[str]) -> List[str]:
        allowed = {"editor", "browser"}
        unknown = [role for role in v if role not in allowed]
        if unknown:
            raise ValueError(f"Unknown roles {unknown} (use: editor, browser)")
        return v


class LayoutSettings(BaseModel):
    """Wide-screen layout tuning."""
    ultrawide_min_width_px: int = Field(5000, gt=0)
    window_height: int = Field(90, ge=1, le=100, description="Percent of screen height")
    max_window_width: float = Field(18.0, gt=0, description="Inches")
    ide_position: IdePosition = IdePosition.LEFT
    justification: Justification = Justification.RIGHT
    max_gap: int = Field(10, ge=0, le=100, description="Percent of screen width")
    display_width_inches: Optional[float] = Field(
        None, gt=0, description="Physical width of the main display; enables the max_window_width cap"
    )


class ChromeSettings(BaseModel):
    pinned_tabs: List[str] = Field(default_factory=list)
    default_tabs: List[str] = Field(default_factory=list)


class FocusSettings(BaseModel):
    max_depth: int = Field(20, gt=0)
    max_age_hours: float = Field(168.0, gt=0)
    fallback_workspace: str = Field("1", min_length=1)


class ProjectEntry(BaseModel):
    """Raw `[[project]]` table before id derivation."""
    name: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    id: Optional[str] = None
    color: str = "#007ACC"
    remote: Optional[str] = None
    chrome_pinned_tabs: List[str] = Field(default_factory=list)
    chrome_default_tabs: List[str] = Field(default_factory=list)

    @field_validator("name", "path")
    @classmethod
    def strip_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    def to_project(self) -> Project:
        project_id = self.id if self.id is not None else normalize_project_id(self.name)
        path = self.path if self.remote else str(Path(self.path).expanduser())
        return Project(
            id=project_id,
            name=self.name,
            path=path,
            color=self.color,
            remote=self.remote,
            chrome_pinned_tabs=self.chrome_pinned_tabs,
            chrome_default_tabs=self.chrome_default_tabs,
        )


class Config(BaseModel):
    """Validated configuration snapshot."""
    projects: List[Project] = Field(..., min_length=1)
    aerospace: AeroSpaceSettings = Field(default_factory=AeroSpaceSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    chrome: ChromeSettings = Field(default_factory=ChromeSettings)
    focus: FocusSettings = Field(default_factory=FocusSettings)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "Config":
        seen = set()
        for project in self.projects:
            if project.id in seen:
                raise ValueError(f"Duplicate project id '{project.id}'")
            seen.add(project.id)
        return self

    def get_project(self, project_id: str) -> Project:
        """Look up a project by id.

        Raises:
            ApError: projectNotFound
        """
        for project in self.projects:
            if project.id == project_id:
                return project
        raise project_not_found(project_id, [p.id for p in self.projects])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Build a config from parsed TOML data.

        Raises:
            ValidationError: If the data is invalid
        """
        data = dict(data)
        entries = [ProjectEntry.model_validate(p) for p in data.pop("project", [])]
        return cls.model_validate({**data, "projects": [e.to_project() for e in entries]})


def load_config(path: Optional[Path] = None) -> Config:
    """Load and validate config.toml.

    Args:
        path: Config file (default: AGENT_PANEL_CONFIG or ~/.config/agent-panel/config.toml)

    Returns:
        Validated Config

    Raises:
        ApError: configFailed for a missing file, TOML syntax errors or invalid values
    """
    path = path or default_config_path()

    if not path.exists():
        raise ApError(
            code=ErrorCode.CONFIG_FAILED,
            message=f"Config file not found: {path}",
            suggestion="Create it with at least one [[project]] table (name, path)",
            context={"path": str(path)}
        )

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ApError(
            code=ErrorCode.CONFIG_FAILED,
            message=f"Invalid TOML in {path}: {e}",
            context={"path": str(path)}
        ) from e
    except OSError as e:
        raise ApError(
            code=ErrorCode.CONFIG_FAILED,
            message=f"Failed to read {path}: {e}",
            context={"path": str(path)}
        ) from e

    try:
        config = Config.from_dict(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        raise ApError(
            code=ErrorCode.CONFIG_FAILED,
            message=f"Invalid config {path}: {detail}",
            context={"path": str(path), "errors": e.error_count()}
        ) from e

    logger.info(f"Loaded config with {len(config.projects)} projects from {path}")
    return config
