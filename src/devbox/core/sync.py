# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/core/sync.py

"""
Sync an isolated repository back into the source repository.

The session branch in the source repository is rebuilt as
base ref + (isolated root commit -> isolated HEAD), left staged but not
committed. Every destructive step is preceded by a backup branch; a failure
before the patch is in place restores the branch from that backup.

Step order:

    Capture -> EnsureBranch -> Backup -> Reset -> Clean -> GeneratePatch
        -> ApplyPatch (3-way)   -> Cleanup
        -> FallbackCopy         -> Cleanup   (when ApplyPatch fails)

A failure in Reset, Clean, GeneratePatch or FallbackCopy triggers rollback
and is reported as SyncError. An empty patch is a successful no-op.
"""

import os
import tempfile
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import loguru

from devbox.config.manager import Config
from devbox.core.capture import Snapshot, capture_state
from devbox.core.session import Session
from devbox.data.changeset import ChangeSet
from devbox.storage.mirror import clear_tree, mirror_tree
from devbox.system.exceptions import (
    DevboxError, GitError, OperationWarning, PreconditionError, RollbackError, SyncError, WarningKind
)
from devbox.system.execution import CommandExecutor
from devbox.system.progress import SILENT, OperationReporter
from devbox.vcs.git import GitRepository

logger = loguru.logger

# Index tree left staged by the last successful sync of a branch
SYNCED_TREE_KEY = "branch.{branch}.devboxSyncedTree"


class SyncStep(Enum):
    CAPTURE = "capture"
    ENSURE_BRANCH = "ensure_branch"
    BACKUP = "backup"
    RESET = "reset"
    CLEAN = "clean"
    GENERATE_PATCH = "generate_patch"
    APPLY_PATCH = "apply_patch"
    FALLBACK_COPY = "fallback_copy"
    CLEANUP = "cleanup"


class SyncOutcome(Enum):
    APPLIED = "applied"                  # patch applied with rename information
    FALLBACK_COPIED = "fallback_copied"  # bulk copy, rename information lost
    NO_CHANGES = "no_changes"


@dataclass
class SyncResult:
    """Track results of a sync into the source repository."""
    branch: str
    outcome: Optional[SyncOutcome] = None
    base_ref: Optional[str] = None
    backup_branch: Optional[str] = None
    changeset: ChangeSet = field(default_factory=ChangeSet)
    copy_method: Optional[str] = None
    warnings: list[OperationWarning] = field(default_factory=list)

    def warn(self, kind: WarningKind, message: str) -> None:
        logger.warning(message)
        self.warnings.append(OperationWarning(kind, message))

    def has_warning(self, kind: WarningKind) -> bool:
        return any(w.kind == kind for w in self.warnings)

    def summary(self) -> dict:
        return {
            "branch": self.branch,
            "outcome": self.outcome.value if self.outcome else None,
            "base_ref": self.base_ref,
            "backup_branch": self.backup_branch,
            "copy_method": self.copy_method,
            "changes": self.changeset.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
        }


class SyncEngine:
    """Apply a session's changes to its branch in the source repository.

    Args:
        config: Process configuration (repo_path must be set)
        executor: Command executor shared by all external calls
        reporter: Progress output
        clock: Seconds since the epoch, used to name backup branches
    """

    def __init__(
        self,
        config: Config,
        executor: CommandExecutor | None = None,
        reporter: OperationReporter | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.executor = executor or CommandExecutor()
        self.reporter = reporter or SILENT
        self.clock = clock

    @property
    def base_branch(self) -> str:
        return self.config.user.default_source_branch

    def sync(self, session: Session) -> SyncResult:
        """Make the session branch's working tree equal the isolated repository, staged.

        Raises:
            PreconditionError: Missing clone or repository, or operator work at risk
            SyncError: A step failed; rolled_back tells whether the backup was restored
        """
        self.config.require("repo_path")
        if not session.clone_exists:
            raise PreconditionError(f"Clone directory {session.clone_path} does not exist")
        source = GitRepository(self.config.repo_path, self.executor)
        if not source.is_repository():
            raise PreconditionError(f"Target repository {source.path} is not a git repository")
        clone = session.repository(self.executor)
        result = SyncResult(branch=session.branch)

        self.reporter.info(f"Staging all changes in {clone.path}...")
        snapshot = capture_state(clone, purpose="patch")

        self._check_operator_work(source, session.branch)
        result.base_ref = self._ensure_branch(source, session.branch, result)

        if self._already_in_sync(source, clone, snapshot):
            self.reporter.success("No changes to sync")
            result.outcome = SyncOutcome.NO_CHANGES
            return result

        result.backup_branch = self._create_backup(source, session.branch, result)

        self._run_step(SyncStep.RESET, source, result, lambda: self._reset(source, result.base_ref, session.branch))
        self.reporter.info(f"Removing all untracked files from {source.path}...")
        self._run_step(SyncStep.CLEAN, source, result, lambda: source.clean())

        self.reporter.info(f"Generating patch with rename detection from {clone.path}...")
        patch = self._run_step(
            SyncStep.GENERATE_PATCH, source, result,
            lambda: clone.format_patch(snapshot.root_commit, snapshot.head,
                                       similarity=self.config.user.rename_similarity),
        )

        if not patch:
            self.reporter.info("No changes to apply (patch is empty)")
            result.outcome = SyncOutcome.NO_CHANGES
            self._delete_backup(source, result)
            self.reporter.success("No changes to sync")
            return result

        result.changeset = ChangeSet.from_patch(patch)
        if self._apply_patch(source, patch):
            self.reporter.success("Patch applied successfully with rename detection!")
            self.reporter.info("Changes are staged and ready for you to commit")
            result.outcome = SyncOutcome.APPLIED
        else:
            self.reporter.warn("Patch application failed. Attempting fallback to file copy method...")
            result.copy_method = self._run_step(
                SyncStep.FALLBACK_COPY, source, result,
                lambda: self._fallback_copy(source, clone, result.base_ref),
            )
            result.warn(WarningKind.RENAMES_LOST,
                        "Fallback file copy completed, but rename history was not preserved")
            result.outcome = SyncOutcome.FALLBACK_COPIED

        self._record_synced_tree(source, session.branch)
        self.reporter.success("Sync completed successfully!")
        self._delete_backup(source, result)
        self.reporter.info(f"Don't forget to review and commit the changes in {source.path}")
        return result

    # ---- steps ----

    def _check_operator_work(self, source: GitRepository, branch: str) -> None:
        """Refuse to touch the source repository while it holds uncommitted operator work.

        On the session branch itself, staged changes are accepted only when the
        index is exactly what the previous sync of that branch left behind.
        """
        current = source.current_branch()
        untracked = source.untracked_files(include_ignored=False)
        if current != branch:
            if source.has_uncommitted_changes() or untracked:
                raise PreconditionError(
                    f"Current branch '{current}' in {source.path} has uncommitted changes.",
                    recovery_hint="Please commit or stash them before patching.",
                )
            return

        if source.has_unstaged_changes() or untracked:
            raise PreconditionError(
                f"Branch '{branch}' in {source.path} has uncommitted changes.",
                recovery_hint="Please commit or stash them before patching.",
            )
        if source.has_staged_changes():
            synced_tree = source.config_get(SYNCED_TREE_KEY.format(branch=branch))
            if source.index_tree() != synced_tree:
                raise PreconditionError(
                    f"Branch '{branch}' in {source.path} has staged changes that did not come from devbox.",
                    recovery_hint="Please commit or unstage them before patching.",
                )

    def _ensure_branch(self, source: GitRepository, branch: str, result: SyncResult) -> Optional[str]:
        """Check out (or create) the target branch and return the ref to reset it to.

        None means the branch was created from the current HEAD, or no base
        exists, so there is nothing to reset to.
        """
        candidates = (f"origin/{self.base_branch}", self.base_branch)
        try:
            if not source.branch_exists(branch):
                self.reporter.info(f"Branch {branch} does not exist. Creating it...")
                if source.has_remote("origin") and not source.fetch("origin").ok:
                    result.warn(WarningKind.FETCH_FAILED, "Failed to fetch from origin")
                for candidate in candidates:
                    if source.ref_exists(candidate):
                        source.checkout_new_branch(branch, candidate)
                        self.reporter.success("Branch created successfully")
                        return candidate
                result.warn(
                    WarningKind.NO_BASE_BRANCH,
                    f"Neither {' nor '.join(candidates)} branch found, creating branch from current HEAD",
                )
                source.checkout_new_branch(branch)
                return None

            self.reporter.info(f"Branch {branch} already exists. Checking out...")
            source.checkout(branch)
        except GitError as e:
            raise SyncError(f"Failed to check out branch {branch}: {e}", step=SyncStep.ENSURE_BRANCH)

        for candidate in candidates:
            if source.ref_exists(candidate):
                return candidate
        result.warn(WarningKind.NO_BASE_BRANCH, "Cannot find base branch to reset from")
        return None

    def _already_in_sync(self, source: GitRepository, clone: GitRepository, snapshot: Snapshot) -> bool:
        """True when the target's index and working tree already hold the captured state."""
        try:
            if source.has_unstaged_changes() or source.untracked_files(include_ignored=False):
                return False
            return source.index_tree() == clone.tree_id(snapshot.head)
        except GitError as e:
            logger.debug(f"In-sync check failed, doing a full sync: {e}")
            return False

    def _backup_name(self, source: GitRepository, branch: str) -> str:
        name = f"{branch}.backup.{int(self.clock())}"
        candidate, n = name, 1
        while source.branch_exists(candidate):
            candidate = f"{name}-{n}"
            n += 1
        return candidate

    def _create_backup(self, source: GitRepository, branch: str, result: SyncResult) -> Optional[str]:
        backup = self._backup_name(source, branch)
        self.reporter.info(f"Creating backup branch {backup} for rollback safety...")
        created = source.create_branch(backup, branch, check=False)
        if not created.ok:
            result.warn(
                WarningKind.BACKUP_CREATE_FAILED,
                f"Failed to create backup branch {backup}, continuing without rollback protection",
            )
            return None
        self.reporter.success("Backup branch created")
        return backup

    def _reset(self, source: GitRepository, base_ref: Optional[str], branch: str) -> None:
        if base_ref is None:
            return
        self.reporter.info(f"Resetting {branch} to {base_ref} for clean sync...")
        source.reset_hard(base_ref)

    def _apply_patch(self, source: GitRepository, patch: bytes) -> bool:
        self.reporter.info(f"Applying patch to {source.path} (without committing)...")
        fd, patch_path = tempfile.mkstemp(prefix="devbox-", suffix=".patch")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(patch)
            applied = source.apply_patch(Path(patch_path), three_way=True, index=True)
        finally:
            os.unlink(patch_path)
        if not applied.ok:
            logger.info(f"3-way apply failed: {applied.stderr.strip()}")
        return applied.ok

    def _fallback_copy(self, source: GitRepository, clone: GitRepository, base_ref: Optional[str]) -> str:
        """Discard the failed apply and mirror the clone's working tree over the target."""
        source.reset_hard(base_ref or "HEAD")
        source.clean()
        clear_tree(source.path)
        self.reporter.info("Using file copy method (rename detection will be lost)...")
        method = mirror_tree(clone.path, source.path, method=self.config.user.fallback_copier,
                             executor=self.executor)
        source.add_all()
        return method

    def _record_synced_tree(self, source: GitRepository, branch: str) -> None:
        try:
            source.config_set(SYNCED_TREE_KEY.format(branch=branch), source.index_tree())
        except GitError as e:
            logger.warning(f"Could not record the synced state of {branch}: {e}")

    def _delete_backup(self, source: GitRepository, result: SyncResult) -> None:
        if result.backup_branch is None:
            return
        self.reporter.info("Cleaning up backup branch...")
        if not source.delete_branch(result.backup_branch, check=False).ok:
            result.warn(WarningKind.BACKUP_DELETE_FAILED,
                        f"Failed to delete backup branch {result.backup_branch}")

    # ---- rollback ----

    def _run_step(self, step: SyncStep, source: GitRepository, result: SyncResult, action):
        """Run one destructive step; on failure restore the backup and raise SyncError."""
        try:
            return action()
        except (DevboxError, OSError) as e:
            logger.debug(f"Step {step.value} failed: {e}")
            self._rollback(source, result, step, e)

    def _rollback(self, source: GitRepository, result: SyncResult, step: SyncStep, cause: Exception) -> None:
        label = step.value.replace("_", " ")
        if result.backup_branch is None:
            raise SyncError(
                f"Failed to {label}: {cause}. No backup branch exists; the branch was not rolled back.",
                step=step, rolled_back=False,
                recovery_hint=f"Inspect branch {result.branch} in {source.path} manually.",
            )

        self.reporter.warn(f"{label.capitalize()} failed. Rolling back to backup...")
        backup, branch = result.backup_branch, result.branch
        errors = []
        for description, action in (
            (f"checkout {backup}", lambda: source.checkout(backup, force=True, check=False)),
            (f"delete {branch}", lambda: source.delete_branch(branch, check=False)),
            (f"rename {backup} to {branch}", lambda: source.rename_branch(backup, branch, check=False)),
        ):
            outcome = action()
            if not outcome.ok:
                errors.append(f"{description}: {outcome.stderr.strip()}")

        if errors:
            raise RollbackError(
                f"Failed to {label}: {cause}. Rollback also failed ({'; '.join(errors)}).",
                step=step, rolled_back=False, backup_branch=backup,
                recovery_hint=f"Your previous state is preserved in branch {backup}.",
            )
        result.backup_branch = None
        raise SyncError(
            f"Failed to {label}: {cause}. Rolled back to previous state.",
            step=step, rolled_back=True,
        )
