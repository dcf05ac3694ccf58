"""CLI command handlers for ap.

Implements the project workspace commands: activate, close, return, exit,
move-window, list and check.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .. import __version__
from ..core.aerospace_client import AeroSpaceClient
from ..core.circuit_breaker import CircuitBreaker
from ..core.command_runner import CommandRunner
from ..core.config import AeroSpaceSettings, load_config
from ..errors import ApError
from ..services.project_manager import ProjectManager
from .logging_config import get_global_logger, init_logging, log_command_result, log_timing


# ANSI color codes for output
class Colors:
    RESET = "\033[0m"
    GREEN = "\033[32m"
    RED = "\033[31m"
    BLUE = "\033[34m"
    GRAY = "\033[90m"


def print_success(message: str) -> None:
    """Print success message in green."""
    print(f"{Colors.GREEN}✓{Colors.RESET} {message}")


def print_error(message: str) -> None:
    """Print error message in red."""
    print(f"{Colors.RED}✗{Colors.RESET} {message}", file=sys.stderr)


def print_info(message: str) -> None:
    """Print info message in blue."""
    print(f"{Colors.BLUE}ℹ{Colors.RESET} {message}")


def print_error_with_remediation(error: str, remediation: str) -> None:
    """Print error with remediation steps.

    Format: "Error: <issue>. Remediation: <steps>"
    """
    print(f"{Colors.RED}✗ Error:{Colors.RESET} {error}", file=sys.stderr)
    print(f"{Colors.BLUE}  Remediation:{Colors.RESET} {remediation}", file=sys.stderr)


def print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def report_error(error: ApError, json_mode: bool = False) -> int:
    """Print an ApError (code, message, suggestion, command detail) and return 1."""
    if json_mode:
        print_json({"status": "error", "error": error.to_dict()})
        return 1

    if error.suggestion:
        print_error_with_remediation(f"[{error.code.value}] {error.message}", error.suggestion)
    else:
        print_error(f"[{error.code.value}] {error.message}")

    for key in ("command", "exit_code", "stderr"):
        value = error.context.get(key)
        if value not in (None, ""):
            print(f"{Colors.GRAY}  {key}: {value}{Colors.RESET}", file=sys.stderr)
    for failure in error.context.get("failures", []):
        print(f"{Colors.GRAY}  - {failure}{Colors.RESET}", file=sys.stderr)
    return 1


def build_manager(args: argparse.Namespace) -> ProjectManager:
    """Load config and build the project manager.

    Raises:
        ApError: configFailed
    """
    config_path: Optional[Path] = getattr(args, "config", None)
    return ProjectManager.create(load_config(config_path))


# ============================================================================
# Project commands
# ============================================================================


async def cmd_activate(args: argparse.Namespace) -> int:
    """Activate a project: focus its workspace, ensure editor and browser, lay out.

    Args:
        args: Parsed arguments with 'project' field

    Returns:
        0 on success, 1 on error
    """
    from .formatters import console, format_activation_result

    logger = get_global_logger()
    json_mode = getattr(args, "json", False)

    try:
        manager = build_manager(args)
        with log_timing(f"Activate {args.project}", logger):
            result = await manager.activate(args.project)
    except ApError as e:
        return report_error(e, json_mode)

    if json_mode:
        print_json({"status": "success", **result.to_dict()})
    else:
        console.print(format_activation_result(result))
    return 0


async def cmd_close(args: argparse.Namespace) -> int:
    """Close every window in a project workspace and restore previous focus."""
    from .formatters import console, format_close_result

    json_mode = getattr(args, "json", False)

    try:
        manager = build_manager(args)
        result = await manager.close(args.project)
    except ApError as e:
        return report_error(e, json_mode)

    if json_mode:
        print_json({"status": "success", **result.to_dict()})
    else:
        console.print(format_close_result(result))
    return 0


async def cmd_return(args: argparse.Namespace) -> int:
    """Return to the most recent non-project window or app."""
    from .formatters import describe_focus

    json_mode = getattr(args, "json", False)

    try:
        manager = build_manager(args)
        entry = await manager.focus_stack_pop()
    except ApError as e:
        return report_error(e, json_mode)

    if json_mode:
        print_json({"status": "success", "restored_focus": entry.to_dict() if entry else None})
    elif entry is None:
        print_info("No previous focus to return to")
    else:
        print_success(f"Returned to {describe_focus(entry)}")
    return 0


async def cmd_exit(args: argparse.Namespace) -> int:
    """Leave the active project without closing its windows."""
    from .formatters import console, format_restore_lines, format_warnings

    json_mode = getattr(args, "json", False)

    try:
        manager = build_manager(args)
        result = await manager.exit_to_non_project()
    except ApError as e:
        return report_error(e, json_mode)

    if json_mode:
        print_json({"status": "success", **result.to_dict()})
        return 0

    for line in format_restore_lines(result) + format_warnings(result.warnings):
        console.print(line)
    return 0


async def cmd_move_window(args: argparse.Namespace) -> int:
    """Move a window into a project workspace."""
    json_mode = getattr(args, "json", False)

    try:
        manager = build_manager(args)
        await manager.move_window_to_project(args.window_id, args.project)
    except ApError as e:
        return report_error(e, json_mode)

    if json_mode:
        print_json({"status": "success", "window_id": args.window_id, "project_id": args.project})
    else:
        print_success(f"Moved window {args.window_id} to project '{args.project}'")
    return 0


async def cmd_list(args: argparse.Namespace) -> int:
    """List configured projects with open/active state."""
    from .formatters import console, format_project_list

    json_mode = getattr(args, "json", False)

    try:
        manager = build_manager(args)
        statuses = await manager.project_statuses()
    except ApError as e:
        return report_error(e, json_mode)

    if json_mode:
        print_json({
            "status": "success",
            "projects": [
                {
                    "id": s.project.id,
                    "name": s.project.name,
                    "workspace": s.project.workspace,
                    "path": s.project.path,
                    "remote": s.project.remote,
                    "open": s.is_open,
                    "active": s.is_active,
                }
                for s in statuses
            ],
        })
    else:
        console.print(format_project_list(statuses))
    return 0


async def cmd_check(args: argparse.Namespace) -> int:
    """Verify the installed aerospace supports every command and flag ap uses."""
    logger = get_global_logger()
    json_mode = getattr(args, "json", False)

    try:
        settings = load_config(getattr(args, "config", None)).aerospace
    except ApError as e:
        logger.warning(f"Using default aerospace settings: {e.message}")
        settings = AeroSpaceSettings()

    runner = CommandRunner(default_timeout=settings.timeout_seconds)
    client = AeroSpaceClient(
        runner,
        CircuitBreaker(settings.breaker_cooldown_seconds),
        executable=settings.executable,
        timeout_seconds=settings.timeout_seconds,
    )

    try:
        version = await runner.run(settings.executable, ["--version"])
        log_command_result(settings.executable, ["--version"], version, logger)
        await client.check_compatibility()
    except ApError as e:
        return report_error(e, json_mode)

    version_text = version.stdout.strip().splitlines()[0] if version.stdout.strip() else "unknown"
    if json_mode:
        print_json({"status": "success", "aerospace_version": version_text})
    else:
        print_success(f"aerospace is compatible ({version_text})")
    return 0


# ============================================================================
# Entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ap",
        description="Agent Panel - one editor, one browser, one AeroSpace workspace per project",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"ap {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging (INFO level)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (DEBUG level, includes verbose)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: $AGENT_PANEL_CONFIG or ~/.config/agent-panel/config.toml)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_json_flag(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--json",
            action="store_true",
            help="Output machine-readable JSON"
        )

    # ap activate <project>
    parser_activate = subparsers.add_parser(
        "activate",
        help="Activate a project",
        description="Focus the project workspace, open or find its editor and browser, and lay them out"
    )
    parser_activate.add_argument("project", help="Project id")
    add_json_flag(parser_activate)

    # ap close <project>
    parser_close = subparsers.add_parser(
        "close",
        help="Close a project's windows",
        description="Close every window in the project workspace and restore previous focus"
    )
    parser_close.add_argument("project", help="Project id")
    add_json_flag(parser_close)

    # ap return
    parser_return = subparsers.add_parser(
        "return",
        help="Return to the previous non-project window"
    )
    add_json_flag(parser_return)

    # ap exit
    parser_exit = subparsers.add_parser(
        "exit",
        help="Leave the active project without closing it"
    )
    add_json_flag(parser_exit)

    # ap move-window <window-id> <project>
    parser_move = subparsers.add_parser(
        "move-window",
        help="Move a window into a project workspace"
    )
    parser_move.add_argument("window_id", type=int, help="AeroSpace window id")
    parser_move.add_argument("project", help="Project id")
    add_json_flag(parser_move)

    # ap list
    parser_list = subparsers.add_parser(
        "list",
        help="List projects with open/active state"
    )
    add_json_flag(parser_list)

    # ap check
    parser_check = subparsers.add_parser(
        "check",
        help="Check aerospace compatibility"
    )
    add_json_flag(parser_check)

    return parser


def cli_main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    init_logging(verbose=args.verbose, debug=args.debug)

    command_handlers = {
        "activate": cmd_activate,
        "close": cmd_close,
        "return": cmd_return,
        "exit": cmd_exit,
        "move-window": cmd_move_window,
        "list": cmd_list,
        "check": cmd_check,
    }

    handler = command_handlers.get(args.command)
    if handler:
        return asyncio.run(handler(args))
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(cli_main())
