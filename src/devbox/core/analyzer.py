# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/core/analyzer.py

"""
Classify what changed in an isolated repository since its root commit.

The comparison is tree-to-tree between the root commit and a freshly
captured HEAD, with rename/copy detection at the configured similarity
threshold and complete-rewrite detection enabled.
"""

from dataclasses import dataclass

from devbox.core.capture import Snapshot, capture_state
from devbox.data.changeset import ChangeSet
from devbox.vcs.git import GitRepository

DEFAULT_SIMILARITY = 90


@dataclass(frozen=True)
class Analysis:
    snapshot: Snapshot
    changeset: ChangeSet


def analyze_changes(repo: GitRepository, similarity: int = DEFAULT_SIMILARITY,
                    purpose: str = "diff") -> Analysis:
    """Capture the working tree and classify every path changed since the root commit."""
    snapshot = capture_state(repo, purpose=purpose)
    changeset = repo.diff_name_status(snapshot.root_commit, snapshot.head, similarity=similarity)
    return Analysis(snapshot=snapshot, changeset=changeset)
