# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_mirror.py

import os
import shutil

import pytest

from devbox.storage import clear_tree, mirror_tree
from devbox.system.exceptions import ToolNotFoundError
from devbox.system.execution import CommandExecutor
from tests.fixtures.repo_helpers import write


@pytest.fixture
def tree(tmp_path):
    src = tmp_path / "src"
    write(src / "a.txt", "alpha\n")
    write(src / "nested" / "b.bin", bytes(range(10)))
    write(src / ".git" / "HEAD", "ref: refs/heads/main\n")
    write(src / "nested" / ".git" / "config", "[core]\n")
    script = write(src / "run.sh", "#!/bin/sh\n")
    script.chmod(0o755)
    os.symlink("a.txt", src / "link")
    os.symlink("missing", src / "dangling")
    return src


class NoRsyncExecutor(CommandExecutor):
    def which(self, tool):
        return None


def assert_mirrored(src, dest):
    assert (dest / "a.txt").read_text() == "alpha\n"
    assert (dest / "nested" / "b.bin").read_bytes() == bytes(range(10))
    assert os.readlink(dest / "link") == "a.txt"
    assert os.readlink(dest / "dangling") == "missing"
    assert os.access(dest / "run.sh", os.X_OK)
    assert not (dest / "nested" / ".git").exists()


class TestMirrorTree:
    def test_python_copy(self, tree, tmp_path):
        dest = tmp_path / "dest"
        dest.mkdir()
        assert mirror_tree(tree, dest, method="python") == "python"
        assert_mirrored(tree, dest)
        assert not (dest / ".git").exists()

    def test_python_copy_preserves_mtime(self, tree, tmp_path):
        os.utime(tree / "a.txt", (1_000_000_000, 1_000_000_000))
        dest = tmp_path / "dest"
        dest.mkdir()
        mirror_tree(tree, dest, method="python")
        assert (dest / "a.txt").stat().st_mtime == 1_000_000_000

    def test_auto_without_rsync_uses_python(self, tree, tmp_path):
        dest = tmp_path / "dest"
        dest.mkdir()
        assert mirror_tree(tree, dest, method="auto", executor=NoRsyncExecutor()) == "python"

    def test_rsync_required_but_missing(self, tree, tmp_path):
        with pytest.raises(ToolNotFoundError):
            mirror_tree(tree, tmp_path, method="rsync", executor=NoRsyncExecutor())

    @pytest.mark.skipif(shutil.which("rsync") is None, reason="rsync not installed")
    def test_rsync_copy(self, tree, tmp_path):
        dest = tmp_path / "dest"
        dest.mkdir()
        assert mirror_tree(tree, dest, method="rsync") == "rsync"
        assert_mirrored(tree, dest)
        assert not (dest / ".git").exists()

    def test_existing_metadata_in_dest_is_kept(self, tree, tmp_path):
        dest = tmp_path / "dest"
        write(dest / ".git" / "HEAD", "ref: refs/heads/feature\n")
        mirror_tree(tree, dest, method="python")
        assert (dest / ".git" / "HEAD").read_text() == "ref: refs/heads/feature\n"


class TestClearTree:
    def test_keeps_git_directory(self, tree):
        clear_tree(tree)
        assert [p.name for p in tree.iterdir()] == [".git"]

    def test_symlinked_directory_is_unlinked_not_followed(self, tmp_path):
        target = tmp_path / "target"
        write(target / "precious.txt", "x")
        root = tmp_path / "root"
        root.mkdir()
        os.symlink(target, root / "dirlink")
        clear_tree(root)
        assert not (root / "dirlink").exists()
        assert (target / "precious.txt").exists()
