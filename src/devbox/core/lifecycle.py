# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.15
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/core/lifecycle.py

"""
Session lifecycle operations for devbox.

This module composes the provisioner, the sync engine and the sandbox
manager into the operations behind each command:
- run: provision the clone (once) and enter the sandbox
- diff / patch: inspect or sync the session's changes
- rm / clean: remove the sandbox, or the sandbox and the clone
- refresh: re-clone from the remote, replacing the clone and its root commit
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import loguru

from devbox.config.manager import Config, validate_session_name
from devbox.core.analyzer import Analysis, analyze_changes
from devbox.core.provision import ConfirmClean, IsolationProvisioner, ProvisionResult
from devbox.core.session import Session
from devbox.core.sync import SyncEngine, SyncResult
from devbox.sandbox.docker import ContainerRuntime, SandboxManager, SandboxState, SessionListing, SessionStatus
from devbox.system.exceptions import ContainerError, DevboxError, PreconditionError, ToolNotFoundError
from devbox.system.execution import CommandExecutor
from devbox.system.progress import SILENT, OperationReporter
from devbox.vcs.git import GitRepository

logger = loguru.logger


@dataclass
class CleanResult:
    container_removed: bool
    clone_removed: bool

    def summary(self) -> dict:
        return {"container_removed": self.container_removed, "clone_removed": self.clone_removed}


def _manager(config: Config, runtime: ContainerRuntime | None, executor: CommandExecutor | None,
             reporter: OperationReporter | None) -> SandboxManager:
    return SandboxManager(config, runtime=runtime, executor=executor, reporter=reporter)


def run_session(
    config: Config,
    name: str,
    source_branch: Optional[str] = None,
    confirm_clean: ConfirmClean | None = None,
    attach: bool = True,
    executor: CommandExecutor | None = None,
    runtime: ContainerRuntime | None = None,
    reporter: OperationReporter | None = None,
) -> tuple[ProvisionResult, SandboxState]:
    """Provision the session clone if needed, then enter its sandbox.

    Returns:
        Provisioning result and the state the sandbox was found in
    """
    config.require("clone_path_prefix", "repo_path")
    session = Session.from_config(config, name, source_branch)
    manager = _manager(config, runtime, executor, reporter)

    # A missing image is a precondition failure only if a container must be created
    if manager.runtime.state(session.name) == SandboxState.NOT_FOUND:
        manager.check_image()

    provisioner = IsolationProvisioner(config, executor=executor, confirm_clean=confirm_clean, reporter=reporter)
    result = provisioner.provision(session)
    state = manager.ensure(session, attach=attach)
    return result, state


def stop_sandbox(config: Config, name: str, runtime: ContainerRuntime | None = None,
                 executor: CommandExecutor | None = None,
                 reporter: OperationReporter | None = None) -> bool:
    return _manager(config, runtime, executor, reporter).stop(validate_session_name(name))


def remove_sandbox(config: Config, name: str, runtime: ContainerRuntime | None = None,
                   executor: CommandExecutor | None = None,
                   reporter: OperationReporter | None = None) -> bool:
    """Remove the sandbox only; the clone is kept."""
    return _manager(config, runtime, executor, reporter).remove(validate_session_name(name))


def clean_session(config: Config, name: str, runtime: ContainerRuntime | None = None,
                  executor: CommandExecutor | None = None,
                  reporter: OperationReporter | None = None) -> CleanResult:
    """Remove the sandbox and delete the clone directory.

    Raises:
        DevboxError: If the clone directory exists but cannot be deleted
    """
    config.require("clone_path_prefix")
    reporter = reporter or SILENT
    session = Session.from_config(config, name)
    manager = _manager(config, runtime, executor, reporter)

    try:
        container_removed = manager.remove(session.name)
    except (ContainerError, ToolNotFoundError) as e:
        reporter.warn(f"Failed to remove container (may not exist): {e}")
        container_removed = False

    clone_removed = False
    if session.clone_path.is_dir():
        reporter.info(f"Deleting repository at {session.clone_path}...")
        try:
            shutil.rmtree(session.clone_path)
        except OSError as e:
            raise DevboxError(f"Failed to delete repository {session.clone_path}: {e}")
        clone_removed = True
    else:
        reporter.warn(f"Directory {session.clone_path} does not exist")
    return CleanResult(container_removed=container_removed, clone_removed=clone_removed)


def _require_session_repositories(config: Config, session: Session, executor: CommandExecutor | None) -> None:
    if not session.clone_exists:
        raise PreconditionError(f"Clone directory {session.clone_path} does not exist")
    source = GitRepository(config.repo_path, executor)
    if not source.is_repository():
        raise PreconditionError(f"Target repository {config.repo_path} is not a git repository")
    if not source.branch_exists(session.branch):
        raise PreconditionError(
            f"Branch {session.branch} does not exist in original repository.",
            recovery_hint=f"Run 'devbox run {session.branch}' first.",
        )


def diff_session(config: Config, name: str, executor: CommandExecutor | None = None) -> Analysis:
    """Classify the session's changes since its root commit."""
    config.require("repo_path", "clone_path_prefix")
    session = Session.from_config(config, name)
    _require_session_repositories(config, session, executor)
    return analyze_changes(session.repository(executor), similarity=config.user.rename_similarity)


def patch_session(config: Config, name: str, executor: CommandExecutor | None = None,
                  reporter: OperationReporter | None = None) -> SyncResult:
    """Sync the session's changes into its branch, staged but not committed."""
    config.require("repo_path", "clone_path_prefix")
    session = Session.from_config(config, name)
    return SyncEngine(config, executor=executor, reporter=reporter).sync(session)


def list_sessions(config: Config, runtime: ContainerRuntime | None = None,
                  executor: CommandExecutor | None = None,
                  reporter: OperationReporter | None = None) -> list[SessionListing]:
    return _manager(config, runtime, executor, reporter).list_sessions()


def session_status(config: Config, name: str, runtime: ContainerRuntime | None = None,
                   executor: CommandExecutor | None = None) -> SessionStatus:
    config.require("clone_path_prefix")
    session = Session.from_config(config, name)
    return _manager(config, runtime, executor, None).status(session)


def refresh_session(
    config: Config,
    name: str,
    source_branch: Optional[str] = None,
    force: bool = False,
    executor: CommandExecutor | None = None,
    runtime: ContainerRuntime | None = None,
    reporter: OperationReporter | None = None,
) -> ProvisionResult:
    """Re-clone the session from the remote repository.

    The sandbox must be stopped, since its mounted directory is replaced, and
    the clone must hold no changes since its root commit unless force is set.
    The new clone is detached like any other, so it gets a new root commit and
    no remote history. The previous clone is moved aside and put back if
    provisioning fails.

    Raises:
        ConfigError: If the remote URL is not configured
        PreconditionError: If the sandbox is running or the clone has changes
    """
    config.require("repo_url", "repo_path", "clone_path_prefix")
    reporter = reporter or SILENT
    session = Session.from_config(config, name, source_branch)
    manager = _manager(config, runtime, executor, reporter)

    if manager.runtime.state(session.name) == SandboxState.RUNNING:
        raise PreconditionError(
            f"Container {session.name} is running.",
            recovery_hint=f"Run 'devbox stop {session.name}' before refreshing.",
        )

    if session.clone_exists:
        clone = session.repository(executor)
        if clone.is_repository() and not force:
            analysis = analyze_changes(clone, similarity=config.user.rename_similarity, purpose="refresh")
            if not analysis.changeset.is_empty:
                counts = analysis.changeset.counts()
                raise PreconditionError(
                    f"Clone {session.clone_path} has {sum(counts.values())} changed files.",
                    recovery_hint=f"Run 'devbox patch {session.name}' first, or pass --force to discard them.",
                )
        previous = session.clone_path.with_name(f".{session.name}.previous")
        if previous.exists():
            shutil.rmtree(previous)
        reporter.info(f"Moving existing clone at {session.clone_path} aside...")
        session.clone_path.rename(previous)
    else:
        previous = None

    provisioner = IsolationProvisioner(config, executor=executor, reporter=reporter)
    try:
        result = provisioner.provision(session, clone_source=config.repo_url)
    except (DevboxError, OSError):
        if previous is not None:
            if session.clone_path.exists():
                shutil.rmtree(session.clone_path)
            previous.rename(session.clone_path)
            reporter.warn(f"Refresh failed, previous clone restored at {session.clone_path}")
        raise

    if previous is not None:
        reporter.info("Removing previous clone...")
        shutil.rmtree(previous)
    return result


def build_image(config: Config, context: Path, no_cache: bool = False, quiet: bool = False,
                runtime: ContainerRuntime | None = None) -> None:
    """Build the sandbox image from a Dockerfile in context.

    Raises:
        PreconditionError: If context has no Dockerfile
        ContainerError: If the build fails
    """
    if not (context / "Dockerfile").is_file():
        raise PreconditionError(f"No Dockerfile found in {context}")
    runtime = runtime or ContainerRuntime()
    image = config.user.image_name
    returncode = runtime.build(image, context, no_cache=no_cache, quiet=quiet)
    if returncode != 0:
        raise ContainerError(["docker", "build", "-t", image, str(context)], returncode,
                             message="Build failed!")
