"""
Rendering functions for pore output.

Tree operations return data; this module makes it human-readable.
"""

from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from .domain import ProjectStatus

console = Console()


def format_branch(status: ProjectStatus) -> str:
    if status.missing:
        return "missing"
    if status.branch is None:
        head = (status.head or "")[:7]
        return f"(detached {head})"
    return status.branch


def format_divergence(status: ProjectStatus) -> str:
    parts = []
    if status.ahead:
        parts.append(f"↑{status.ahead}")
    if status.behind:
        parts.append(f"↓{status.behind}")
    return " ".join(parts)


def format_changes(status: ProjectStatus) -> str:
    if status.missing:
        return ""
    if status.clean:
        return "clean"
    parts = []
    if status.staged:
        parts.append(f"{status.staged} staged")
    if status.modified:
        parts.append(f"{status.modified} modified")
    if status.untracked:
        parts.append(f"{status.untracked} untracked")
    return ", ".join(parts)


def render_status_table(
    statuses: Sequence[ProjectStatus],
    title: Optional[str] = "Tree Status",
    target: Optional[Console] = None
) -> None:
    """
    Render project status as a table, one row per project.

    Args:
        statuses: Per-project status, in the order to display
        title: Optional table title
        target: Console to print to (default: stdout console)
    """
    out = target or console
    if not statuses:
        out.print("[yellow]No projects in scope.[/yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )
    table.add_column("Project", style="cyan")
    table.add_column("Branch", style="green")
    table.add_column("Upstream", style="yellow")
    table.add_column("Changes")

    for status in statuses:
        changes = format_changes(status)
        if changes and changes != "clean":
            changes = f"[red]{changes}[/red]"
        table.add_row(
            status.project_path,
            format_branch(status),
            format_divergence(status),
            changes,
        )

    out.print(table)

