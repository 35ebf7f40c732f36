# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/core/capture.py

"""
Snapshot the working tree of an isolated repository into a commit.

This is the only writer of commits into an isolated repository after its
root commit. Capturing is idempotent: with no working-tree changes since the
last capture, HEAD does not move.
"""

from dataclasses import dataclass

import loguru

from devbox.system.exceptions import PreconditionError
from devbox.vcs.git import GitRepository

logger = loguru.logger


@dataclass(frozen=True)
class Snapshot:
    """A captured state: the fixed root commit and the commit reflecting the working tree."""
    root_commit: str
    head: str
    committed: bool


def capture_state(repo: GitRepository, purpose: str = "sync") -> Snapshot:
    """Stage every path (deletions included) and commit if the index differs from HEAD.

    Args:
        repo: Isolated repository
        purpose: Word used in the capture commit message

    Returns:
        Snapshot with the root commit and resulting HEAD

    Raises:
        PreconditionError: If repo is not an initialized git repository
    """
    if not repo.is_repository():
        raise PreconditionError(f"Clone directory {repo.path} is not a git repository")

    repo.add_all()
    committed = False
    if repo.has_staged_changes():
        logger.debug(f"Committing captured changes in {repo.path}")
        repo.commit(f"Capture state for {purpose}")
        committed = True
    else:
        logger.debug(f"No changes to capture in {repo.path}")

    return Snapshot(root_commit=repo.root_commit(), head=repo.head(), committed=committed)
