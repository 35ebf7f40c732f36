# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/cli/utils.py

"""
CLI utility functions shared by every devbox command.

This module provides standardized functions for:
- Configuration loading with console error reporting
- Error handling with typer exits and recovery hints
- JSON output of handler results
- Interactive confirmation callbacks for core operations

All functions handle console output and typer exits consistently.
"""

from typing import Any, Callable

import orjson
import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

from devbox.config.manager import Config
from devbox.system.exceptions import ConfigError, DevboxError, SyncError
from devbox.system.logging_setup import setup_logging


def load_config_with_console(console: Console, verbose: bool = False) -> Config:
    """
    Load devbox configuration with proper error handling and console output.

    Raises:
        typer.Exit: If configuration loading fails
    """
    if verbose:
        console.print("[dim]Loading configuration...[/dim]")
    try:
        return Config.load()
    except ConfigError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        raise typer.Exit(1)


def handle_operation_error(console: Console, operation: str, error: Exception) -> None:
    """Handle operation errors with consistent formatting."""
    console.print(f"[red]✗[/red] Error {operation}: {escape(str(error))}")
    if isinstance(error, SyncError) and error.rolled_back:
        console.print("[yellow]The branch was restored to its state before the patch[/yellow]")
    hint = getattr(error, "recovery_hint", None)
    if hint:
        console.print(escape(hint))
    raise typer.Exit(1)


def emit_json(data: Any) -> None:
    """Print handler results as indented JSON on stdout."""
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def confirm_clean_untracked(console: Console) -> Callable[[list[str]], bool]:
    """Build the callback the provisioner uses before removing untracked files.

    The provisioner has already listed the files through its reporter.
    """
    def _confirm(untracked: list[str]) -> bool:
        console.print(f"[yellow]{len(untracked)} untracked files will be deleted.[/yellow]")
        return typer.confirm("Remove untracked files with 'git clean -fdx'?", default=False)
    return _confirm


def run_command(
    ctx: typer.Context,
    operation: str,
    handler: Callable[[Console, Config], Any],
    to_json: bool = False,
) -> Any:
    """Load config, configure logging, run handler, and report the outcome.

    Args:
        ctx: Typer context carrying the global --debug/--verbose flags
        operation: Verb phrase used in error messages ("syncing changes")
        handler: Called with (console, config); returns a JSON-serializable result
        to_json: Print the handler result as JSON instead of rich output

    Raises:
        typer.Exit: On any devbox error
    """
    state = ctx.obj or {}
    console = Console(quiet=to_json)
    error_console = Console(stderr=True)
    config = load_config_with_console(error_console, verbose=state.get("verbose", False))
    setup_logging(config, debug=state.get("debug", False), verbose=state.get("verbose", False))

    try:
        result = handler(console, config)
    except DevboxError as e:
        logger.debug(f"{operation} failed: {e!r}")
        handle_operation_error(error_console, operation, e)
    except (typer.Exit, typer.Abort):
        raise
    except Exception as e:
        logger.opt(exception=e).debug(f"Unexpected error {operation}")
        error_console.print(f"[red]✗[/red] Unexpected error {operation}: {escape(str(e))}")
        error_console.print("Re-run with --debug for details")
        raise typer.Exit(1)
    if to_json:
        emit_json(result)
    return result
