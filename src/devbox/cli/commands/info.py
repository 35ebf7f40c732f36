# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/cli/commands/info.py

"""
Info command handlers - read-only inspection commands.

Handles: diff, list, status

diff records the clone's working tree as a commit before comparing, so it
writes to the isolated repository but never to the source repository.
"""

from typing import Any

from rich.console import Console

from devbox.config.manager import Config
from devbox.core.lifecycle import diff_session, list_sessions, session_status
from devbox.system.display import display_changeset, display_session_status, display_sessions
from devbox.system.progress import OperationReporter


def diff(console: Console, config: Config, name: str) -> dict[str, Any]:
    """Show changes in the session clone since it was created.

    Returns:
        The classified changes for JSON output
    """
    console.print(f"[dim]Analyzing changes in {name}...[/dim]")
    analysis = diff_session(config, name)
    display_changeset(console, analysis.changeset, session_name=name)
    return {
        "name": name,
        "root_commit": analysis.snapshot.root_commit,
        "head": analysis.snapshot.head,
        **analysis.changeset.to_dict(),
    }


def list_containers(console: Console, config: Config) -> list[dict[str, Any]]:
    sessions = list_sessions(config, reporter=OperationReporter(console))
    display_sessions(console, sessions)
    return [s.to_dict() for s in sessions]


def status(console: Console, config: Config, name: str) -> dict[str, Any]:
    result = session_status(config, name)
    display_session_status(console, result)
    return result.to_dict()
