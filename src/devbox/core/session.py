# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/core/session.py

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from devbox.config.manager import Config, validate_session_name
from devbox.system.execution import CommandExecutor
from devbox.vcs.git import GitRepository


@dataclass(frozen=True)
class Session:
    """One named unit of isolated work.

    The name is at once the branch in the source repository, the sandbox
    name, and the last component of the clone path.
    """
    name: str
    source_branch: str
    clone_path: Path

    @classmethod
    def from_config(cls, config: Config, name: str, source_branch: Optional[str] = None) -> "Session":
        validate_session_name(name)
        return cls(
            name=name,
            source_branch=source_branch or config.user.default_source_branch,
            clone_path=config.clone_path_for(name),
        )

    @property
    def branch(self) -> str:
        return self.name

    @property
    def clone_exists(self) -> bool:
        return self.clone_path.is_dir()

    def repository(self, executor: CommandExecutor | None = None) -> GitRepository:
        return GitRepository(self.clone_path, executor)
