# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/cli/main.py

"""
CLI dispatcher routing devbox commands to their handlers.

Commands are thin: each one binds its options into a lambda and hands it to
run_command, which loads configuration, configures logging, maps errors to
exit codes and prints JSON when asked.
"""

# Standard library imports
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Optional

# Third-party imports
import typer
from rich.console import Console

# Local devbox imports
from devbox.cli.utils import run_command
from devbox.cli.commands import actions as action_commands
from devbox.cli.commands import info as info_commands

# Initialize Typer app
app = typer.Typer(
    help="""devbox - Isolated development sessions with git-native sync back

[bold blue]Sessions:[/bold blue] run, stop, rm, clean, refresh
[bold green]Changes:[/bold green] diff, patch
[bold magenta]Inspection:[/bold magenta] list, status
[bold yellow]Image:[/bold yellow] build
""",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        try:
            pkg_version = version("devbox")
        except PackageNotFoundError:
            pkg_version = "unknown"
        console.print(f"devbox version {pkg_version}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """devbox - Isolated development sessions with git-native sync back."""
    ctx.obj = {"debug": debug, "verbose": verbose}


# =============================================================================
# SESSION COMMANDS
# =============================================================================

@app.command()
def run(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name (container, directory and branch)"),
    source_branch: Optional[str] = typer.Option(None, "--from", help="Branch to clone from (default: main)"),
    assume_yes: bool = typer.Option(False, "--yes", "-y", help="Remove untracked files in the source branch without asking"),
    no_clean: bool = typer.Option(False, "--no-clean", help="Keep untracked files in the source branch without asking"),
    no_attach: bool = typer.Option(False, "--no-attach", help="Do not attach to a running or restarted container"),
) -> Any:
    """[bold blue]Sessions[/bold blue]: Create the session clone and enter its container."""
    if assume_yes and no_clean:
        raise typer.BadParameter("--yes and --no-clean are mutually exclusive")
    return run_command(
        ctx, "starting session",
        lambda console, config: action_commands.run(
            console, config, name,
            source_branch=source_branch, assume_yes=assume_yes, no_clean=no_clean,
            attach=not no_attach,
        ),
    )


@app.command()
def stop(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
) -> Any:
    """[bold blue]Sessions[/bold blue]: Stop the container; it can be resumed with run."""
    return run_command(ctx, "stopping container", lambda console, config: action_commands.stop(console, config, name))


@app.command()
def rm(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
) -> Any:
    """[bold blue]Sessions[/bold blue]: Remove the container; the clone is kept."""
    return run_command(ctx, "removing container", lambda console, config: action_commands.rm(console, config, name))


@app.command()
def clean(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
) -> Any:
    """[bold blue]Sessions[/bold blue]: Remove the container and delete the clone."""
    return run_command(ctx, "cleaning session", lambda console, config: action_commands.clean(console, config, name))


@app.command()
def refresh(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
    source_branch: Optional[str] = typer.Option(None, "--from", help="Branch to clone from (default: main)"),
    force: bool = typer.Option(False, "--force", help="Discard unsynced changes in the clone"),
) -> Any:
    """[bold blue]Sessions[/bold blue]: Re-clone from DEVBOX_REPO_URL as a new baseline (container must be stopped)."""
    return run_command(
        ctx, "refreshing session",
        lambda console, config: action_commands.refresh(
            console, config, name, source_branch=source_branch, force=force
        ),
    )


# =============================================================================
# CHANGE COMMANDS
# =============================================================================

@app.command()
def diff(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> Any:
    """[bold green]Changes[/bold green]: Show what changed in the clone since it was created."""
    return run_command(
        ctx, "analyzing changes",
        lambda console, config: info_commands.diff(console, config, name),
        to_json=to_json,
    )


@app.command()
def patch(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
) -> Any:
    """[bold green]Changes[/bold green]: Apply the clone's changes to the session branch (staged, not committed)."""
    return run_command(ctx, "syncing changes", lambda console, config: action_commands.patch(console, config, name))


# =============================================================================
# INSPECTION COMMANDS
# =============================================================================

@app.command(name="list")
def list_command(
    ctx: typer.Context,
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> Any:
    """[bold magenta]Inspection[/bold magenta]: List devbox containers."""
    return run_command(
        ctx, "listing containers",
        lambda console, config: info_commands.list_containers(console, config),
        to_json=to_json,
    )


@app.command(name="ls", hidden=True)
def ls_command(
    ctx: typer.Context,
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> Any:
    """Alias for list."""
    return list_command(ctx, to_json=to_json)


@app.command()
def status(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> Any:
    """[bold magenta]Inspection[/bold magenta]: Show container state and clone cleanliness."""
    return run_command(
        ctx, "checking status",
        lambda console, config: info_commands.status(console, config, name),
        to_json=to_json,
    )


# =============================================================================
# IMAGE COMMANDS
# =============================================================================

@app.command()
def build(
    ctx: typer.Context,
    context: Path = typer.Option(Path("."), "--context", help="Directory containing the Dockerfile"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Build without the layer cache"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress build output"),
) -> Any:
    """[bold yellow]Image[/bold yellow]: Build the devbox container image."""
    return run_command(
        ctx, "building image",
        lambda console, config: action_commands.build(
            console, config, context, no_cache=no_cache, quiet=quiet
        ),
    )


@app.command(name="help")
def help_command(ctx: typer.Context) -> None:
    """Show this help message."""
    typer.echo((ctx.parent or ctx).get_help())


# =============================================================================
# ENTRY POINT
# =============================================================================

def main() -> None:  # pragma: no cover - entry point
    """Entry point for the devbox CLI application."""
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
