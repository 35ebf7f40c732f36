# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/cli/commands/actions.py

"""
Action command handlers - state-changing operations.

Handles: run, rm, clean, patch, refresh, build
"""

from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from devbox.cli.utils import confirm_clean_untracked
from devbox.config.manager import Config
from devbox.core import lifecycle
from devbox.core.sync import SyncOutcome
from devbox.system.display import display_changeset, display_warnings
from devbox.system.progress import OperationReporter


def run(
    console: Console,
    config: Config,
    name: str,
    source_branch: Optional[str] = None,
    assume_yes: bool = False,
    no_clean: bool = False,
    attach: bool = True,
) -> dict[str, Any]:
    """Provision the session clone and start (or attach to) its sandbox.

    Args:
        console: Rich console for output
        config: Loaded configuration
        name: Session name (container, directory and branch)
        source_branch: Branch the clone is taken from
        assume_yes: Remove untracked files in the source without asking
        no_clean: Keep untracked files in the source without asking
        attach: Attach the terminal to the sandbox

    Returns:
        Provisioning summary for JSON output
    """
    if assume_yes:
        confirm = lambda untracked: True
    elif no_clean:
        confirm = lambda untracked: False
    else:
        confirm = confirm_clean_untracked(console)

    reporter = OperationReporter(console)
    result, state = lifecycle.run_session(
        config, name,
        source_branch=source_branch,
        confirm_clean=confirm,
        attach=attach,
        reporter=reporter,
    )
    if result.created:
        console.print(f"[green]✓[/green] Created isolated clone at {result.session.clone_path}")
    display_warnings(console, result.warnings)
    return {**result.summary(), "sandbox": state.value}


def stop(console: Console, config: Config, name: str) -> dict[str, Any]:
    stopped = lifecycle.stop_sandbox(config, name, reporter=OperationReporter(console))
    if stopped:
        console.print(f"[green]✓[/green] Container {name} stopped")
    return {"name": name, "container_stopped": stopped}


def rm(console: Console, config: Config, name: str) -> dict[str, Any]:
    removed = lifecycle.remove_sandbox(config, name, reporter=OperationReporter(console))
    if removed:
        console.print(f"[green]✓[/green] Container {name} removed")
    return {"name": name, "container_removed": removed}


def clean(console: Console, config: Config, name: str) -> dict[str, Any]:
    """Remove the sandbox and delete the session clone."""
    result = lifecycle.clean_session(config, name, reporter=OperationReporter(console))
    console.print(f"[green]✓[/green] Cleanup completed for {name}")
    return {"name": name, **result.summary()}


def patch(console: Console, config: Config, name: str) -> dict[str, Any]:
    """Sync the session's changes into its branch in the source repository."""
    result = lifecycle.patch_session(config, name, reporter=OperationReporter(console))
    if result.outcome != SyncOutcome.NO_CHANGES:
        display_changeset(console, result.changeset)
    display_warnings(console, result.warnings)
    return {"name": name, **result.summary()}


def refresh(
    console: Console,
    config: Config,
    name: str,
    source_branch: Optional[str] = None,
    force: bool = False,
) -> dict[str, Any]:
    """Rebuild the session clone from the remote repository."""
    result = lifecycle.refresh_session(
        config, name, source_branch=source_branch, force=force, reporter=OperationReporter(console)
    )
    console.print(f"[green]✓[/green] Refreshed {result.session.clone_path} from {config.repo_url}")
    display_warnings(console, result.warnings)
    return result.summary()


def build(console: Console, config: Config, context: Path, no_cache: bool = False,
          quiet: bool = False) -> dict[str, Any]:
    image = config.user.image_name
    console.print(f"[blue]Building {image} image...[/blue]")
    lifecycle.build_image(config, context, no_cache=no_cache, quiet=quiet)
    console.print(f"[green]✓[/green] Image {image} built successfully")
    return {"image": image, "context": str(context)}
