# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.15
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/sandbox/docker.py

"""
Sandbox lifecycle over the docker CLI.

A sandbox is a container named after its session, created from the devbox
image with the session clone mounted as its working directory. The runtime
is reached only through ContainerRuntime so it can be replaced in tests.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import loguru
import orjson

from devbox.config.manager import Config
from devbox.core.session import Session
from devbox.system.exceptions import ContainerError, PreconditionError, ToolNotFoundError
from devbox.system.execution import CommandExecutor
from devbox.system.progress import SILENT, OperationReporter

logger = loguru.logger


class SandboxState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ContainerInfo:
    """One row of `docker ps -a`."""
    name: str
    status: str
    running: bool


class ContainerRuntime:
    """Typed wrapper over the docker command line."""

    def __init__(self, executor: CommandExecutor | None = None, binary: str = "docker"):
        self.executor = executor or CommandExecutor()
        self.binary = binary

    def _docker(self, *args: str, check: bool = True):
        return self.executor.run([self.binary, *args], check=check, error_cls=ContainerError)

    def _ps(self, *filters: str) -> list[ContainerInfo]:
        args = ["ps", "-a", "--no-trunc", "--format", "{{json .}}"]
        for f in filters:
            args += ["--filter", f]
        output = self._docker(*args).stdout
        containers = []
        for line in output.splitlines():
            if not line.strip():
                continue
            row = orjson.loads(line)
            status = row.get("Status", "")
            state = row.get("State", "")
            containers.append(ContainerInfo(
                name=row.get("Names", ""),
                status=status,
                running=state == "running" if state else status.startswith("Up"),
            ))
        return containers

    def image_exists(self, image: str) -> bool:
        return self._docker("image", "inspect", image, check=False).ok

    def state(self, name: str) -> SandboxState:
        pattern = "^/?" + name.replace(".", r"\.") + "$"
        for info in self._ps(f"name={pattern}"):
            if info.name == name:
                return SandboxState.RUNNING if info.running else SandboxState.STOPPED
        return SandboxState.NOT_FOUND

    def list_containers(self, image: str) -> list[ContainerInfo]:
        return self._ps(f"ancestor={image}")

    def start(self, name: str) -> None:
        self._docker("start", name)

    def attach(self, name: str) -> int:
        return self.executor.run_interactive([self.binary, "attach", name])

    def run(self, name: str, image: str, mounts: list[tuple[Path, str]],
            command: tuple[str, ...] = ("bash",)) -> int:
        """Create and start a container attached to the current terminal."""
        argv = [self.binary, "run", "-it", "--name", name]
        for host_path, container_path in mounts:
            argv += ["-v", f"{host_path}:{container_path}"]
        argv += [image, *command]
        return self.executor.run_interactive(argv)

    def stop(self, name: str) -> None:
        self._docker("stop", name)

    def remove(self, name: str) -> None:
        self._docker("rm", "-f", name)

    def build(self, tag: str, context: Path, no_cache: bool = False, quiet: bool = False) -> int:
        argv = [self.binary, "build", "-t", tag]
        if no_cache:
            argv.append("--no-cache")
        if quiet:
            argv.append("--quiet")
        argv.append(str(context))
        return self.executor.run_interactive(argv)


@dataclass(frozen=True)
class SessionListing:
    name: str
    status: str
    running: bool
    clone_exists: bool

    def to_dict(self) -> dict:
        return {"name": self.name, "status": self.status, "running": self.running,
                "clone_exists": self.clone_exists}


@dataclass(frozen=True)
class SessionStatus:
    name: str
    sandbox_state: SandboxState
    clone_path: Optional[Path]
    clone_exists: bool
    # None when the clone is missing or not a git repository
    clone_dirty: Optional[bool]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "sandbox": self.sandbox_state.value,
            "clone_path": str(self.clone_path) if self.clone_path else None,
            "clone_exists": self.clone_exists,
            "clone_dirty": self.clone_dirty,
        }


class SandboxManager:
    """Create, attach, remove and inspect session sandboxes."""

    def __init__(self, config: Config, runtime: ContainerRuntime | None = None,
                 executor: CommandExecutor | None = None,
                 reporter: OperationReporter | None = None):
        self.config = config
        self.executor = executor or CommandExecutor()
        self.runtime = runtime or ContainerRuntime(self.executor)
        self.reporter = reporter or SILENT

    @property
    def image(self) -> str:
        return self.config.user.image_name

    def check_image(self) -> None:
        if not self.runtime.image_exists(self.image):
            raise PreconditionError(
                f"Docker image '{self.image}' not found.",
                recovery_hint="Run 'devbox build' first.",
            )

    def ensure_auth_files(self) -> None:
        """Create the per-operator credential directory and config file if missing."""
        user = self.config.user
        user.auth_dir.mkdir(parents=True, exist_ok=True)
        if not user.auth_file.exists():
            self.reporter.info(f"Creating {user.auth_file}...")
            user.auth_file.parent.mkdir(parents=True, exist_ok=True)
            user.auth_file.write_text("{}\n")

    def mounts_for(self, session: Session) -> list[tuple[Path, str]]:
        user = self.config.user
        home = user.container_home.rstrip("/")
        return [
            (user.auth_dir, f"{home}/{user.container_auth_dir}"),
            (user.auth_file, f"{home}/{user.container_auth_file}"),
            (session.clone_path, user.container_workdir),
        ]

    def ensure(self, session: Session, attach: bool = True) -> SandboxState:
        """Attach if running, start+attach if stopped, else create+run.

        Returns:
            The state the sandbox was found in
        """
        state = self.runtime.state(session.name)
        if state == SandboxState.RUNNING:
            if attach:
                self.reporter.info(f"Attaching to running container {session.name}...")
                self.runtime.attach(session.name)
        elif state == SandboxState.STOPPED:
            self.reporter.info(f"Starting existing container {session.name}...")
            self.runtime.start(session.name)
            if attach:
                self.runtime.attach(session.name)
        else:
            self.check_image()
            self.ensure_auth_files()
            self.reporter.info(f"Creating and starting new container {session.name}...")
            self.runtime.run(session.name, self.image, self.mounts_for(session))
        return state

    def stop(self, name: str) -> bool:
        """Stop a running sandbox; returns False (with a warning) when it is not running."""
        state = self.runtime.state(name)
        if state != SandboxState.RUNNING:
            self.reporter.warn(f"Container {name} is not running" if state == SandboxState.STOPPED
                               else f"Container {name} does not exist")
            return False
        self.reporter.info(f"Stopping container {name}...")
        self.runtime.stop(name)
        return True

    def remove(self, name: str) -> bool:
        """Force-remove the sandbox; returns False (with a warning) when it does not exist."""
        if self.runtime.state(name) == SandboxState.NOT_FOUND:
            self.reporter.warn(f"Container {name} does not exist")
            return False
        self.reporter.info(f"Removing container {name}...")
        self.runtime.remove(name)
        return True

    def _clone_exists(self, name: str) -> bool:
        prefix = self.config.clone_path_prefix
        return prefix is not None and (prefix / name).is_dir()

    def list_sessions(self) -> list[SessionListing]:
        """Sandboxes built from the configured image; empty (with a warning) when docker is unavailable."""
        try:
            containers = self.runtime.list_containers(self.image)
        except (ContainerError, ToolNotFoundError) as e:
            self.reporter.warn(f"Could not list containers: {e}")
            return []
        return [
            SessionListing(name=c.name, status=c.status, running=c.running,
                           clone_exists=self._clone_exists(c.name))
            for c in containers
        ]

    def status(self, session: Session) -> SessionStatus:
        clone_dirty = None
        clone = session.repository(self.executor)
        if session.clone_exists and clone.is_repository():
            clone_dirty = clone.has_uncommitted_changes()
        return SessionStatus(
            name=session.name,
            sandbox_state=self.runtime.state(session.name),
            clone_path=session.clone_path,
            clone_exists=session.clone_exists,
            clone_dirty=clone_dirty,
        )
