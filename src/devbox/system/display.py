# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/system/display.py

from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from devbox.data.changeset import ChangeSet
from devbox.sandbox.docker import SandboxState, SessionListing, SessionStatus
from devbox.system.exceptions import OperationWarning


def _section(console: Console, title: str, marker: str, color: str, paths: Iterable[str]) -> None:
    paths = list(paths)
    if not paths:
        return
    console.print(f"[bold]{title}:[/bold]")
    for path in paths:
        console.print(f"  [{color}]{marker}[/{color}] {escape(path)}", highlight=False)
    console.print()


def display_changeset(console: Console, changes: ChangeSet, session_name: Optional[str] = None) -> None:
    """Display a classified ChangeSet as counts followed by per-category listings."""
    if changes.is_empty:
        console.print("[green]No changes since the clone was created[/green]")
        return

    counts = changes.counts()
    console.print(
        f"[green]{counts['new']} new[/green], "
        f"[red]{counts['deleted']} deleted[/red], "
        f"[yellow]{counts['modified']} modified[/yellow], "
        f"[blue]{counts['renamed']} renamed[/blue]"
    )
    console.print()

    _section(console, "Renamed", "R", "blue", (e.describe() for e in changes.renamed))
    _section(console, "New", "+", "green", (e.describe() for e in changes.added))
    _section(console, "Modified", "M", "yellow", (e.path for e in changes.modified))
    _section(console, "Deleted", "-", "red", (e.path for e in changes.deleted))

    if session_name:
        console.print(f"[dim]Run 'devbox patch {session_name}' to apply these changes[/dim]")


def display_warnings(console: Console, warnings: list[OperationWarning]) -> None:
    if not warnings:
        return
    body = "\n".join(f"[yellow]•[/yellow] {escape(w.message)}" for w in warnings)
    console.print(Panel(body, title="Warnings", border_style="yellow"))


def sessions_to_table(sessions: list[SessionListing]) -> Table:
    table = Table(title="devbox sessions")
    table.add_column("CONTAINER")
    table.add_column("STATUS")
    table.add_column("CLONE")
    for s in sessions:
        status_style = "green" if s.running else "dim"
        table.add_row(
            escape(s.name),
            f"[{status_style}]{escape(s.status)}[/{status_style}]",
            "[green]✓[/green]" if s.clone_exists else "[red]✗[/red]",
        )
    return table


def display_sessions(console: Console, sessions: list[SessionListing]) -> None:
    if not sessions:
        console.print("No devbox containers found")
        return
    console.print(sessions_to_table(sessions))


_STATE_LABELS = {
    SandboxState.RUNNING: "[green]running[/green]",
    SandboxState.STOPPED: "[yellow]stopped[/yellow]",
    SandboxState.NOT_FOUND: "[dim]not found[/dim]",
}


def display_session_status(console: Console, status: SessionStatus) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Session", escape(status.name))
    table.add_row("Sandbox", _STATE_LABELS[status.sandbox_state])
    table.add_row("Clone", escape(str(status.clone_path)) if status.clone_exists else "[red]missing[/red]")
    if status.clone_dirty is not None:
        table.add_row("Working tree",
                      "[yellow]uncommitted changes[/yellow]" if status.clone_dirty else "[green]clean[/green]")
    console.print(table)
