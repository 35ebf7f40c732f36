# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/system/progress.py

"""
Operator-facing progress messages for long-running operations.

Core operations report through an OperationReporter so they stay usable
without a terminal (tests pass none and get the silent reporter).
"""

from typing import Iterable

from rich.console import Console
from rich.markup import escape


class OperationReporter:
    """Colored step messages for run/patch/refresh."""

    def __init__(self, console: Console | None = None, quiet: bool = False) -> None:
        self.console = console
        self.quiet = quiet

    def _print(self, style: str, message: str) -> None:
        if self.console is None or self.quiet:
            return
        self.console.print(f"[{style}]{escape(message)}[/{style}]")

    def info(self, message: str) -> None:
        self._print("blue", message)

    def success(self, message: str) -> None:
        self._print("green", message)

    def warn(self, message: str) -> None:
        # Warnings are shown even in quiet mode
        if self.console is not None:
            self.console.print(f"[yellow]{escape(message)}[/yellow]")

    def listing(self, items: Iterable[str], limit: int = 20) -> None:
        """Print up to limit items, then a count of the rest."""
        if self.console is None or self.quiet:
            return
        items = list(items)
        for item in items[:limit]:
            self.console.print(f"  {escape(item)}", highlight=False)
        if len(items) > limit:
            self._print("blue", f"... and {len(items) - limit} more files")


SILENT = OperationReporter()
