"""Rich formatters for ap CLI output."""

from typing import List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models.focus import FocusEntry, FocusKind
from ..models.results import ActivationResult, ActivationWarning, CloseResult, FocusRestoreResult
from ..services.project_manager import ProjectStatus


# Global console instance
console = Console()


def format_project_list(statuses: List[ProjectStatus]) -> Table:
    """Format configured projects with their workspace state as a Rich table."""
    table = Table(title="Projects", show_header=True, header_style="bold cyan")

    table.add_column("", width=2)
    table.add_column("ID", style="bold green")
    table.add_column("Name")
    table.add_column("Workspace", style="blue")
    table.add_column("Path", style="dim")
    table.add_column("Remote", style="magenta")

    for status in statuses:
        project = status.project
        if status.is_active:
            marker = "[bold green]●[/bold green]"
        elif status.is_open:
            marker = "[yellow]○[/yellow]"
        else:
            marker = " "

        table.add_row(
            marker,
            project.id,
            project.name,
            project.workspace,
            project.path,
            project.remote or "",
        )

    return table


def format_warnings(warnings: List[ActivationWarning]) -> List[str]:
    return [f"[yellow]⚠ {w.code.value}:[/yellow] {w.message}" for w in warnings]


def format_activation_result(result: ActivationResult) -> Panel:
    lines = [
        f"[bold cyan]Workspace:[/bold cyan] {result.workspace}",
        f"[bold cyan]Editor window:[/bold cyan] {result.editor_window_id}",
        f"[bold cyan]Browser window:[/bold cyan] {result.browser_window_id}",
        f"[bold cyan]Layout:[/bold cyan] {'applied' if result.layout_applied else 'unchanged'}",
    ]
    if result.warnings:
        lines.append("")
        lines.extend(format_warnings(result.warnings))

    return Panel("\n".join(lines), title=f"Activated {result.project_id}", border_style="green")


def describe_focus(entry: FocusEntry) -> str:
    if entry.kind is FocusKind.WINDOW:
        return f"window {entry.window_id} ({entry.app_bundle_id}) on {entry.workspace}"
    return f"app {entry.app_bundle_id}"


def format_restore_lines(result: FocusRestoreResult) -> List[str]:
    if result.restored_focus is not None:
        return [f"[bold cyan]Restored:[/bold cyan] {describe_focus(result.restored_focus)}"]
    return [f"[bold cyan]Fallback workspace:[/bold cyan] {result.fallback_workspace}"]


def format_close_result(result: CloseResult) -> Panel:
    closed = ", ".join(str(i) for i in result.closed_window_ids) or "none"
    lines = [f"[bold cyan]Closed windows:[/bold cyan] {closed}"]
    lines.extend(format_restore_lines(FocusRestoreResult(
        restored_focus=result.restored_focus,
        fallback_workspace=result.fallback_workspace,
    )))
    if result.warnings:
        lines.append("")
        lines.extend(format_warnings(result.warnings))

    border = "yellow" if result.warnings else "green"
    return Panel("\n".join(lines), title=f"Closed {result.project_id}", border_style=border)
