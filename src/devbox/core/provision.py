# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/core/provision.py

"""
Create the history-detached working copy a session runs against.

The clone keeps the exact bytes and the exact tracked file list of the source
branch, but none of its history: the copy gets a fresh repository whose only
root commit ("Initial commit") is the fixed reference point for every later
diff and patch of the session.
"""

import shutil
from dataclasses import dataclass, field
from typing import Callable, Optional

import loguru

from devbox.config.manager import Config
from devbox.core.session import Session
from devbox.system.exceptions import (
    DevboxError, GitError, OperationWarning, PreconditionError, ProvisionError, WarningKind
)
from devbox.system.execution import CommandExecutor
from devbox.system.progress import SILENT, OperationReporter
from devbox.vcs.git import GitRepository

logger = loguru.logger

ROOT_COMMIT_MESSAGE = "Initial commit"
ISOLATED_BRANCH = "main"

# Written to .git/info/attributes during the initial add. info/attributes takes
# precedence over every .gitattributes in the tree, nested ones included.
BINARY_ATTRIBUTES = "* -text\n"

# Called with the untracked paths; returns True to remove them with `clean -fdx`
ConfirmClean = Callable[[list[str]], bool]


def _never_clean(untracked: list[str]) -> bool:
    return False


@dataclass
class ProvisionResult:
    """Track results of provisioning a session clone."""
    session: Session
    created: bool
    root_commit: Optional[str] = None
    clone_file_count: int = 0
    branch_file_count: int = 0
    branch_created: bool = False
    warnings: list[OperationWarning] = field(default_factory=list)

    def warn(self, kind: WarningKind, message: str) -> None:
        logger.warning(message)
        self.warnings.append(OperationWarning(kind, message))

    def summary(self) -> dict:
        return {
            "name": self.session.name,
            "clone_path": str(self.session.clone_path),
            "created": self.created,
            "root_commit": self.root_commit,
            "clone_file_count": self.clone_file_count,
            "branch_file_count": self.branch_file_count,
            "branch_created": self.branch_created,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class IsolationProvisioner:
    """Stand up the isolated repository for a session.

    Args:
        config: Process configuration (repo_path must be set)
        executor: Command executor shared by all git calls
        confirm_clean: Decides whether untracked files in the source branch are removed
        reporter: Progress output
    """

    def __init__(
        self,
        config: Config,
        executor: CommandExecutor | None = None,
        confirm_clean: ConfirmClean | None = None,
        reporter: OperationReporter | None = None,
    ):
        self.config = config
        self.executor = executor or CommandExecutor()
        self.confirm_clean = confirm_clean or _never_clean
        self.reporter = reporter or SILENT

    def provision(self, session: Session, clone_source: str | None = None) -> ProvisionResult:
        """Create session.clone_path unless it already exists.

        Args:
            session: Session to provision
            clone_source: Where to clone from; defaults to the local source
                repository (refresh passes the remote URL)

        Returns:
            ProvisionResult; created is False when an existing clone was reused

        Raises:
            PreconditionError: Source repository missing or dirty (nothing mutated)
            ProvisionError: Cloning or re-initialization failed (clone path removed)
        """
        result = ProvisionResult(session=session, created=False)

        if session.clone_path.exists():
            self.reporter.warn(f"Directory {session.clone_path} already exists. Using existing clone.")
            clone = session.repository(self.executor)
            if clone.is_repository():
                result.root_commit = clone.root_commit()
            return result

        self.config.require("repo_path")
        source_repo = GitRepository(self.config.repo_path, self.executor)
        self._prepare_source(source_repo, session, result)

        clone_source = clone_source or str(self.config.repo_path)
        try:
            self._create_clone(source_repo, session, clone_source, result)
        except (DevboxError, OSError) as e:
            if session.clone_path.exists():
                shutil.rmtree(session.clone_path, ignore_errors=True)
            if isinstance(e, ProvisionError):
                raise
            raise ProvisionError(f"Failed to provision {session.clone_path}: {e}")

        result.created = True
        return result

    # ---- source repository checks ----

    def _prepare_source(self, source_repo: GitRepository, session: Session, result: ProvisionResult) -> None:
        """Validate the source branch and make sure the session branch exists."""
        if not source_repo.is_repository():
            raise PreconditionError(f"Original repository not found at {source_repo.path}")

        source_branch = session.source_branch
        if not source_repo.ref_exists(source_branch):
            raise PreconditionError(f"Source branch '{source_branch}' not found in original repository")

        current_branch = source_repo.current_branch()
        switched = False
        if current_branch != source_branch:
            if source_repo.has_uncommitted_changes():
                raise PreconditionError(
                    f"Current branch '{current_branch}' has uncommitted changes.",
                    recovery_hint="Please commit or stash them before creating a new container.",
                )
            self.reporter.info(f"Checking out {source_branch} branch to verify clean state...")
            source_repo.checkout(source_branch)
            switched = True

        try:
            if source_repo.has_uncommitted_changes():
                raise PreconditionError(
                    f"Source branch '{source_branch}' has uncommitted changes.",
                    recovery_hint="Please commit or stash them first.",
                )
            self._handle_untracked(source_repo, source_branch, result)

            if not source_repo.branch_exists(session.branch):
                self.reporter.info(f"Creating branch {session.branch} from {source_branch}...")
                source_repo.create_branch(session.branch, source_branch)
                result.branch_created = True
                self.reporter.success(f"Branch {session.branch} created in original repository from {source_branch}")
            else:
                self.reporter.info(f"Branch {session.branch} already exists in original repository")
        finally:
            if switched:
                source_repo.checkout(current_branch)

    def _handle_untracked(self, source_repo: GitRepository, source_branch: str, result: ProvisionResult) -> None:
        untracked = source_repo.untracked_files()
        if not untracked:
            return

        self.reporter.warn(f"Source branch '{source_branch}' has untracked files:")
        self.reporter.listing(untracked)
        self.reporter.warn("These files will be removed with 'git clean -fdx' to ensure a clean branch")

        if self.confirm_clean(untracked):
            self.reporter.info("Running: git clean -fdx")
            try:
                source_repo.clean()
            except GitError as e:
                raise PreconditionError(f"Failed to clean untracked files from {source_branch} branch: {e}")
            self.reporter.success("Untracked files cleaned")
        else:
            result.warn(
                WarningKind.UNTRACKED_KEPT,
                f"Skipping clean. {len(untracked)} untracked files left in place on {source_branch}.",
            )

    # ---- clone and detach ----

    def _create_clone(self, source_repo: GitRepository, session: Session,
                      clone_source: str, result: ProvisionResult) -> None:
        clone_path = session.clone_path
        clone_path.parent.mkdir(parents=True, exist_ok=True)

        self.reporter.info(f"Cloning from branch {session.source_branch} into {clone_path}...")
        clone = GitRepository.clone(clone_source, session.source_branch, clone_path, self.executor)

        self.reporter.info(f"Re-initializing git repository in {clone_path}...")
        tracked = clone.ls_files()
        shutil.rmtree(clone_path / ".git")

        clone.init(initial_branch=ISOLATED_BRANCH)
        clone.config_set("core.autocrlf", "false")
        clone.config_set("core.eol", "lf")
        clone.config_set("core.safecrlf", "false")

        attributes_file = clone_path / ".git" / "info" / "attributes"
        attributes_file.parent.mkdir(parents=True, exist_ok=True)
        attributes_file.write_text(BINARY_ATTRIBUTES)
        try:
            self._add_tracked(clone, tracked, result)
        finally:
            attributes_file.unlink()

        result.root_commit = clone.commit(ROOT_COMMIT_MESSAGE, allow_empty=True)

        result.clone_file_count = len(clone.ls_files())
        result.branch_file_count = len(source_repo.ls_tree_names(session.source_branch)) \
            if clone_source == str(source_repo.path) else len(tracked)
        if result.clone_file_count == result.branch_file_count:
            self.reporter.success(
                f"Repository initialized successfully (synced with {session.source_branch} in original repo)"
            )
            self.reporter.info(f"Verified: {result.clone_file_count} files in sync")
        else:
            result.warn(
                WarningKind.FILE_COUNT_MISMATCH,
                f"File count mismatch: clone has {result.clone_file_count} files, "
                f"branch has {result.branch_file_count} files. "
                "This may be expected if the repository has broken symlinks.",
            )

    def _add_tracked(self, clone: GitRepository, tracked: list[str], result: ProvisionResult) -> None:
        """Add every previously tracked path that is present, bypassing ignore rules.

        Broken symlinks count as present. A path that git refuses is reported
        and skipped; it never aborts the loop.
        """
        present = [
            path for path in tracked
            if path and ((clone.path / path).exists() or (clone.path / path).is_symlink())
        ]
        if not present:
            return
        if clone.add(present, force=True).ok:
            return

        logger.debug("Bulk add failed, adding paths one at a time")
        for path in present:
            added = clone.add([path], force=True)
            if not added.ok:
                result.warn(WarningKind.ADD_FAILED, f"Could not add {path}: {added.stderr.strip()}")
