"""
Error handling for Agent Panel.

Every failure that leaves the orchestration layer is an ApError carrying one
ErrorCode from a closed set, a human-readable message, an optional
suggestion and structured context (command, exit code, stderr, window ids).
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ErrorCode(Enum):
    """
    Error codes for project activation and workspace management.

    Values match the names used in logs and JSON output.
    """

    AEROSPACE_INCOMPATIBLE = "aeroSpaceIncompatible"
    CONFIG_FAILED = "configFailed"
    PROJECT_NOT_FOUND = "projectNotFound"
    WORKSPACE_NOT_FOCUSED = "workspaceNotFocused"
    WORKSPACE_NOT_FOCUSED_AFTER_MOVE = "workspaceNotFocusedAfterMove"
    REQUIRED_WINDOW_MISSING = "requiredWindowMissing"
    AMBIGUOUS_WINDOWS = "ambiguousWindows"
    MOVE_FAILED = "moveFailed"
    LAYOUT_FAILED = "layoutFailed"
    RESIZE_FAILED = "resizeFailed"
    SCREEN_METRICS_UNAVAILABLE = "screenMetricsUnavailable"
    COMMAND_FAILED = "commandFailed"
    STATE_LOAD_FAILED = "stateLoadFailed"
    STATE_SAVE_FAILED = "stateSaveFailed"
    CANCELLED = "cancelled"


class ApError(Exception):
    """Base exception for Agent Panel errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            suggestion: Suggested recovery action
            context: Additional context for debugging
        """
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to a dictionary for JSON output.

        Returns:
            Error dictionary with code, message, suggestion, and context
        """
        result: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message
        }

        if self.suggestion:
            result["suggestion"] = self.suggestion

        if self.context:
            result["context"] = self.context

        return result

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[{self.code.value}] {self.message}"]

        if self.suggestion:
            parts.append(f"Suggestion: {self.suggestion}")

        return "\n".join(parts)


class CommandNotFoundError(ApError):
    """Raised when an executable cannot be spawned."""

    def __init__(self, executable: str, detail: str):
        super().__init__(
            code=ErrorCode.COMMAND_FAILED,
            message=f"Failed to launch {executable}.",
            suggestion=f"Check that {executable} is installed and on PATH",
            context={"command": executable, "detail": detail}
        )
        self.executable = executable


class CommandTimeoutError(ApError):
    """Raised when an external command does not finish within its timeout."""

    def __init__(self, command: str, timeout_seconds: float):
        super().__init__(
            code=ErrorCode.COMMAND_FAILED,
            message=f"Command timed out after {timeout_seconds:g}s: {command}",
            suggestion="The external process is unresponsive; retry shortly",
            context={"command": command, "timeout_seconds": timeout_seconds}
        )
        self.command = command
        self.timeout_seconds = timeout_seconds


class CircuitOpenError(ApError):
    """Raised without running anything while the circuit breaker is open."""

    def __init__(self, remaining_seconds: float, cooldown_seconds: float):
        super().__init__(
            code=ErrorCode.COMMAND_FAILED,
            message="AeroSpace is unresponsive (circuit breaker open).",
            suggestion=(
                "A previous aerospace command timed out. "
                f"Retry in {max(1, int(round(remaining_seconds)))}s."
            ),
            context={
                "remaining_seconds": round(remaining_seconds, 3),
                "cooldown_seconds": cooldown_seconds,
            }
        )
        self.remaining_seconds = remaining_seconds


class CommandFailedError(ApError):
    """Raised when an external command exits non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str, stdout: str = ""):
        super().__init__(
            code=ErrorCode.COMMAND_FAILED,
            message=f"{command} failed with exit code {exit_code}.",
            context={
                "command": command,
                "exit_code": exit_code,
                "stderr": stderr.strip(),
            }
        )
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout


class OutputParseError(ApError):
    """Raised when window manager output does not have the expected shape."""

    def __init__(self, message: str, line: str, expected: str):
        super().__init__(
            code=ErrorCode.COMMAND_FAILED,
            message=message,
            suggestion="The installed aerospace may have changed its output format; run `ap check`",
            context={"line": line, "expected": expected}
        )
        self.line = line


def project_not_found(project_id: str, known_ids: Sequence[str] = ()) -> ApError:
    """Create a projectNotFound error."""
    return ApError(
        code=ErrorCode.PROJECT_NOT_FOUND,
        message=f"Project not found: {project_id}",
        suggestion="Use 'ap list' to see configured projects",
        context={"project_id": project_id, "known_ids": list(known_ids)}
    )


def required_window_missing(role: str, token: str, workspace: str) -> ApError:
    """Create a requiredWindowMissing error."""
    return ApError(
        code=ErrorCode.REQUIRED_WINDOW_MISSING,
        message=f"No {role} window tagged {token} appeared",
        suggestion=f"Check that the {role} opened a window titled with {token}",
        context={"role": role, "token": token, "workspace": workspace}
    )


def cancelled(stage: str) -> ApError:
    """Create a cancelled error."""
    return ApError(
        code=ErrorCode.CANCELLED,
        message=f"Activation cancelled during {stage}",
        context={"stage": stage}
    )


def incompatible(failures: List[str]) -> ApError:
    """Create an aeroSpaceIncompatible error from sorted failure lines."""
    return ApError(
        code=ErrorCode.AEROSPACE_INCOMPATIBLE,
        message="Installed aerospace is missing required commands or flags.",
        suggestion="Upgrade AeroSpace: brew upgrade --cask nikitabobko/tap/aerospace",
        context={"failures": sorted(failures)}
    )
