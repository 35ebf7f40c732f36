# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/conftest.py

"""
Shared test fixtures for the devbox test suite.

Source repositories are real git repositories built in tmp_path. Global and
system git configuration is isolated so that an operator's autocrlf or
default-branch settings cannot leak into the tests.
"""

import shutil
from pathlib import Path

import pytest

from devbox.config.manager import Config, UserConfig
from devbox.core.session import Session
from tests.fixtures.repo_helpers import FakeRuntime, commit_all, git, write


@pytest.fixture(autouse=True)
def isolated_git_config(tmp_path_factory, monkeypatch):
    """Point git at an empty global config with a test identity."""
    home = tmp_path_factory.mktemp("home")
    gitconfig = home / ".gitconfig"
    gitconfig.write_text(
        "[user]\n\tname = Test Operator\n\temail = operator@example.org\n"
        "[init]\n\tdefaultBranch = main\n"
        "[core]\n\tautocrlf = false\n"
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in ("DEVBOX_REPO_PATH", "DEVBOX_CLONE_PATH_PREFIX", "DEVBOX_REPO_URL",
                "DEVBOX_CONFIG_HOME", "XDG_CONFIG_HOME"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def source_repo(tmp_path) -> Path:
    """A source repository on main with a small committed tree."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    repo = tmp_path / "source"
    repo.mkdir()
    git(repo, "init", "--quiet")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    write(repo / "README.md", "# project\n")
    write(repo / "src" / "app.py", "".join(f"line {i:04d} of the application module\n" for i in range(100)))
    write(repo / "src" / "util.py", "def helper():\n    return 1\n")
    write(repo / "docs" / "guide.txt", "Guide\n")
    commit_all(repo, "initial")
    return repo


@pytest.fixture
def config(tmp_path, source_repo) -> Config:
    prefix = tmp_path / "clones"
    prefix.mkdir()
    return Config(
        repo_path=source_repo,
        clone_path_prefix=prefix,
        user=UserConfig(
            auth_dir=tmp_path / "auth",
            auth_file=tmp_path / "auth.json",
            fallback_copier="python",
        ),
    )


@pytest.fixture
def session(config) -> Session:
    return Session.from_config(config, "feature-x")


@pytest.fixture
def provisioned(config, session):
    """A session whose clone and branch have been provisioned."""
    from devbox.core.provision import IsolationProvisioner
    result = IsolationProvisioner(config).provision(session)
    assert result.created
    return session


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()
