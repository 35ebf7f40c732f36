# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.12
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/system/exceptions.py

"""
devbox-specific exception classes and non-fatal outcome records.

Fatal conditions are raised as exceptions rooted at DevboxError. Best-effort
failures that must not abort an operation are recorded as OperationWarning
entries on the operation's result object so callers (and tests) can see
exactly which guarantee was weakened.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence


class DevboxError(Exception):
    """Base exception for all devbox errors."""

    def __init__(self, message: str, recovery_hint: str | None = None):
        self.recovery_hint = recovery_hint
        super().__init__(message)


class ConfigError(DevboxError):
    """Raised when configuration or a session name is missing or invalid."""
    pass


class PreconditionError(DevboxError):
    """Raised before any mutation when the repositories or runtime are not in a usable state."""
    pass


class ToolNotFoundError(PreconditionError):
    """An external executable (git, docker, rsync) is not installed."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Required executable '{tool}' not found in PATH")


# === EXTERNAL COMMAND FAILURES ===

class CommandError(DevboxError):
    """An external command exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "", message: str | None = None):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        if message is None:
            message = f"Command failed ({returncode}): {' '.join(self.argv)}"
            if stderr.strip():
                message += f"\n{stderr.strip()}"
        super().__init__(message)


class GitError(CommandError):
    """Version control operation failed."""
    pass


class ContainerError(CommandError):
    """Container runtime operation failed."""
    pass


# === LIFECYCLE FAILURES ===

class ProvisionError(DevboxError):
    """Provisioning failed after its preconditions passed."""
    pass


class SyncError(DevboxError):
    """Sync back into the source repository failed.

    When rolled_back is True the target branch was restored from the backup
    branch and the source repository is in its pre-patch state.
    """

    def __init__(self, message: str, step=None, rolled_back: bool = False,
                 backup_branch: str | None = None, recovery_hint: str | None = None):
        self.step = step
        self.rolled_back = rolled_back
        self.backup_branch = backup_branch
        super().__init__(message, recovery_hint=recovery_hint)


class RollbackError(SyncError):
    """Rollback after a failed sync step did not complete."""
    pass


# === NON-FATAL OUTCOMES ===

class WarningKind(Enum):
    BACKUP_CREATE_FAILED = "backup_create_failed"
    BACKUP_DELETE_FAILED = "backup_delete_failed"
    FILE_COUNT_MISMATCH = "file_count_mismatch"
    RENAMES_LOST = "renames_lost"
    FETCH_FAILED = "fetch_failed"
    NO_BASE_BRANCH = "no_base_branch"
    UNTRACKED_KEPT = "untracked_kept"
    ADD_FAILED = "add_failed"


@dataclass(frozen=True)
class OperationWarning:
    """A best-effort step that failed without aborting the operation."""
    kind: WarningKind
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}
