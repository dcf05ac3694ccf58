"""Result models returned to the CLI and other callers.

Failures are raised as ApError; these models only describe success, with
non-fatal problems carried as warnings.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..errors import ApError, ErrorCode
from .focus import FocusEntry


class ActivationWarning(BaseModel):
    """Non-fatal problem observed while activating or closing a project."""
    code: ErrorCode = Field(..., description="Error code describing the problem")
    message: str = Field(..., description="Human-readable description")
    context: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def from_error(cls, error: ApError, code: Optional[ErrorCode] = None) -> "ActivationWarning":
        """Downgrade an ApError to a warning, optionally re-coding it."""
        context = dict(error.context)
        if code is not None and code != error.code:
            context["cause"] = error.code.value
        return cls(code=code or error.code, message=error.message, context=context)

    @classmethod
    def ambiguous(cls, role: str, workspace: str, chosen_id: int, extra_ids: List[int]) -> "ActivationWarning":
        return cls(
            code=ErrorCode.AMBIGUOUS_WINDOWS,
            message=(
                f"Found {len(extra_ids) + 1} {role} windows in {workspace}; "
                f"using {chosen_id}, ignoring {', '.join(str(i) for i in extra_ids)}"
            ),
            context={
                "role": role,
                "workspace": workspace,
                "chosen_id": chosen_id,
                "extra_ids": list(extra_ids),
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "context": self.context}


class ActivationResult(BaseModel):
    """Outcome of a successful project activation."""
    project_id: str
    workspace: str
    editor_window_id: int
    browser_window_id: int
    layout_applied: bool = False
    warnings: List[ActivationWarning] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "workspace": self.workspace,
            "editor_window_id": self.editor_window_id,
            "browser_window_id": self.browser_window_id,
            "layout_applied": self.layout_applied,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class FocusRestoreResult(BaseModel):
    """Where focus went when leaving project context."""
    restored_focus: Optional[FocusEntry] = None
    fallback_workspace: Optional[str] = None
    warnings: List[ActivationWarning] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "restored_focus": self.restored_focus.to_dict() if self.restored_focus else None,
            "fallback_workspace": self.fallback_workspace,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class CloseResult(BaseModel):
    """Outcome of closing a project's workspace."""
    project_id: str
    workspace: str
    closed_window_ids: List[int] = Field(default_factory=list)
    restored_focus: Optional[FocusEntry] = None
    fallback_workspace: Optional[str] = None
    warnings: List[ActivationWarning] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "workspace": self.workspace,
            "closed_window_ids": self.closed_window_ids,
            "restored_focus": self.restored_focus.to_dict() if self.restored_focus else None,
            "fallback_workspace": self.fallback_workspace,
            "warnings": [w.to_dict() for w in self.warnings],
        }
