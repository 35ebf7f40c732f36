# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/fixtures/repo_helpers.py

"""Helpers for building git repositories and a fake container runtime in tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from devbox.sandbox.docker import ContainerInfo, SandboxState

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def git(repo: Path, *args: str, input: bytes | None = None) -> str:
    """Run git in repo for test setup; fails the test on error."""
    proc = subprocess.run(
        ["git", "-C", str(repo), *args],
        input=input, capture_output=True, check=True,
    )
    return proc.stdout.decode("utf-8", errors="replace").strip()


def commit_all(repo: Path, message: str = "commit") -> str:
    git(repo, "add", "-A")
    git(repo, "commit", "--quiet", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def write(path: Path, content: str | bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content)
    return path


class FakeRuntime:
    """In-memory stand-in for ContainerRuntime."""

    def __init__(self, image_present: bool = True):
        self.image_present = image_present
        self.containers: dict[str, bool] = {}
        self.calls: list[tuple] = []
        self.build_returncode = 0
        # Raised by state/list queries, as when docker is missing or the daemon is down
        self.failure = None

    def image_exists(self, image):
        return self.image_present

    def state(self, name):
        if self.failure is not None:
            raise self.failure
        if name not in self.containers:
            return SandboxState.NOT_FOUND
        return SandboxState.RUNNING if self.containers[name] else SandboxState.STOPPED

    def list_containers(self, image):
        if self.failure is not None:
            raise self.failure
        return [
            ContainerInfo(name=name, status="Up 1 minute" if running else "Exited (0) 1 minute ago",
                          running=running)
            for name, running in self.containers.items()
        ]

    def start(self, name):
        self.calls.append(("start", name))
        self.containers[name] = True

    def attach(self, name):
        self.calls.append(("attach", name))
        return 0

    def run(self, name, image, mounts, command=("bash",)):
        self.calls.append(("run", name, image, tuple(mounts)))
        # The interactive shell exits, leaving a stopped container behind
        self.containers[name] = False
        return 0

    def stop(self, name):
        self.calls.append(("stop", name))
        self.containers[name] = False

    def remove(self, name):
        self.calls.append(("remove", name))
        self.containers.pop(name, None)

    def build(self, tag, context, no_cache=False, quiet=False):
        self.calls.append(("build", tag, Path(context), no_cache, quiet))
        return self.build_returncode

