# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_sync.py

"""End-to-end sync of clone changes back into the source repository."""

import pytest

from devbox.core.analyzer import analyze_changes
from devbox.core.provision import IsolationProvisioner
from devbox.core.sync import SyncEngine, SyncOutcome, SyncStep
from devbox.system.exceptions import GitError, PreconditionError, RollbackError, SyncError, WarningKind
from devbox.system.execution import CommandResult
from devbox.vcs.git import GitRepository
from tests.fixtures.repo_helpers import commit_all, git, requires_git, write

pytestmark = requires_git


def heads(repo) -> list[str]:
    return git(repo, "for-each-ref", "--format=%(refname:short)", "refs/heads/").splitlines()


def backup_branches(repo) -> list[str]:
    return [name for name in heads(repo) if ".backup." in name]


def status_porcelain(repo) -> str:
    return git(repo, "status", "--porcelain")


@pytest.fixture
def engine(config) -> SyncEngine:
    return SyncEngine(config, clock=lambda: 1000.0)


@pytest.fixture
def clone(provisioned) -> GitRepository:
    return provisioned.repository()


@pytest.fixture
def source(source_repo) -> GitRepository:
    return GitRepository(source_repo)


def make_typical_changes(clone_path):
    write(clone_path / "README.md", "# project\n\nNow with docs.\n")
    write(clone_path / "docs" / "new.md", "new page\n")
    (clone_path / "src" / "util.py").unlink()
    (clone_path / "src" / "app.py").rename(clone_path / "src" / "main.py")


class TestApply:
    def test_changes_are_staged_not_committed(self, engine, provisioned, clone, source, source_repo):
        branch_tip = source.rev_parse(provisioned.branch)
        make_typical_changes(clone.path)

        result = engine.sync(provisioned)

        assert result.outcome == SyncOutcome.APPLIED
        assert source.current_branch() == provisioned.branch
        assert source.rev_parse(provisioned.branch) == branch_tip
        assert source.index_tree() == clone.tree_id("HEAD")
        assert not source.has_unstaged_changes()
        assert (source_repo / "docs" / "new.md").read_text() == "new page\n"
        assert not (source_repo / "src" / "util.py").exists()

    def test_rename_survives_into_index(self, engine, provisioned, clone, source_repo):
        make_typical_changes(clone.path)
        engine.sync(provisioned)
        staged = git(source_repo, "diff", "--cached", "--name-status", "-M90%")
        assert "R100\tsrc/app.py\tsrc/main.py" in staged.splitlines()

    def test_backup_branch_is_removed(self, engine, provisioned, clone, source_repo):
        make_typical_changes(clone.path)
        result = engine.sync(provisioned)
        assert result.backup_branch == f"{provisioned.branch}.backup.1000"
        assert backup_branches(source_repo) == []
        assert result.warnings == []

    def test_diff_and_patch_agree(self, engine, provisioned, clone):
        make_typical_changes(clone.path)
        write(clone.path / "src" / "copy_of_app.py", (clone.path / "src" / "main.py").read_text())
        summary = analyze_changes(clone).changeset

        result = engine.sync(provisioned)

        assert result.changeset.keys() == summary.keys()

    def test_binary_change(self, engine, provisioned, clone, source_repo):
        payload = bytes(range(256)) * 4
        write(clone.path / "assets" / "logo.bin", payload)
        engine.sync(provisioned)
        assert (source_repo / "assets" / "logo.bin").read_bytes() == payload

    def test_patch_onto_advanced_base(self, engine, provisioned, clone, source, source_repo):
        write(source_repo / "docs" / "guide.txt", "Guide, updated on main\n")
        commit_all(source_repo, "main moves on")
        write(clone.path / "README.md", "# project, edited in session\n")

        result = engine.sync(provisioned)

        assert result.outcome == SyncOutcome.APPLIED
        assert (source_repo / "docs" / "guide.txt").read_text() == "Guide, updated on main\n"
        assert (source_repo / "README.md").read_text() == "# project, edited in session\n"

    def test_missing_session_branch_is_created_from_base(self, engine, provisioned, clone, source, source_repo):
        git(source_repo, "branch", "-D", provisioned.branch)
        write(clone.path / "README.md", "changed\n")

        result = engine.sync(provisioned)

        assert result.base_ref == "main"
        assert source.current_branch() == provisioned.branch
        assert result.outcome == SyncOutcome.APPLIED


class TestLineEndings:
    def test_crlf_round_trip(self, config, session, source_repo):
        write(source_repo / "windows.txt", b"alpha\r\nbeta\r\n")
        write(source_repo / "untouched.txt", b"keep\r\nme\r\n")
        write(source_repo / "mixed.txt", b"unix\nwindows\r\n")
        commit_all(source_repo, "line endings")
        IsolationProvisioner(config).provision(session)
        clone_path = session.clone_path

        write(clone_path / "windows.txt", b"alpha\r\nbeta\r\ngamma\r\n")
        write(clone_path / "mixed.txt", b"unix\nwindows\r\nmore\n")

        SyncEngine(config).sync(session)

        for name in ("windows.txt", "untouched.txt", "mixed.txt"):
            assert (source_repo / name).read_bytes() == (clone_path / name).read_bytes()
        assert (source_repo / "untouched.txt").read_bytes() == b"keep\r\nme\r\n"


class TestNoChanges:
    def test_empty_diff_is_a_no_op(self, engine, provisioned, source_repo):
        branch_tip = git(source_repo, "rev-parse", provisioned.branch)
        refs_before = heads(source_repo)

        result = engine.sync(provisioned)

        assert result.outcome == SyncOutcome.NO_CHANGES
        assert heads(source_repo) == refs_before
        assert git(source_repo, "rev-parse", provisioned.branch) == branch_tip
        assert status_porcelain(source_repo) == ""

    def test_second_patch_is_a_no_op(self, engine, provisioned, clone, source, source_repo):
        make_typical_changes(clone.path)
        engine.sync(provisioned)
        index_after_first = source.index_tree()

        result = engine.sync(provisioned)

        assert result.outcome == SyncOutcome.NO_CHANGES
        assert result.backup_branch is None
        assert source.index_tree() == index_after_first
        assert backup_branches(source_repo) == []


class TestPreconditions:
    def test_operator_work_on_other_branch_blocks_sync(self, engine, provisioned, clone, source_repo):
        git(source_repo, "checkout", "--quiet", "-b", "wip")
        write(source_repo / "README.md", "operator work\n")
        write(clone.path / "docs" / "new.md", "x\n")

        with pytest.raises(PreconditionError):
            engine.sync(provisioned)

        assert git(source_repo, "rev-parse", "--abbrev-ref", "HEAD") == "wip"
        assert (source_repo / "README.md").read_text() == "operator work\n"
        assert backup_branches(source_repo) == []

    def test_unstaged_edit_on_session_branch_blocks_sync(self, engine, provisioned, clone, source_repo):
        git(source_repo, "checkout", "--quiet", provisioned.branch)
        write(source_repo / "docs" / "guide.txt", "Guide, edited by the operator\n")
        write(clone.path / "README.md", "# project, edited in session\n")

        with pytest.raises(PreconditionError, match="uncommitted changes"):
            engine.sync(provisioned)

        assert (source_repo / "docs" / "guide.txt").read_text() == "Guide, edited by the operator\n"
        assert (source_repo / "README.md").read_text() == "# project\n"
        assert backup_branches(source_repo) == []

    def test_untracked_file_on_session_branch_blocks_sync(self, engine, provisioned, clone, source_repo):
        git(source_repo, "checkout", "--quiet", provisioned.branch)
        write(source_repo / "notes.txt", "operator notes\n")
        write(clone.path / "README.md", "changed\n")

        with pytest.raises(PreconditionError):
            engine.sync(provisioned)

        assert (source_repo / "notes.txt").read_text() == "operator notes\n"

    def test_operator_staged_changes_on_session_branch_block_sync(self, engine, provisioned, clone, source_repo):
        git(source_repo, "checkout", "--quiet", provisioned.branch)
        write(source_repo / "docs" / "guide.txt", "Guide, staged by the operator\n")
        git(source_repo, "add", "docs/guide.txt")
        write(clone.path / "README.md", "changed\n")

        with pytest.raises(PreconditionError, match="staged changes"):
            engine.sync(provisioned)

        assert git(source_repo, "diff", "--cached", "--name-only") == "docs/guide.txt"
        assert (source_repo / "docs" / "guide.txt").read_text() == "Guide, staged by the operator\n"

    def test_previous_patch_result_can_be_patched_again(self, engine, provisioned, clone, source, source_repo):
        make_typical_changes(clone.path)
        engine.sync(provisioned)
        write(clone.path / "docs" / "later.md", "written after the first patch\n")

        result = engine.sync(provisioned)

        assert result.outcome == SyncOutcome.APPLIED
        assert (source_repo / "docs" / "later.md").read_text() == "written after the first patch\n"
        assert (source_repo / "docs" / "new.md").read_text() == "new page\n"

    def test_missing_clone(self, engine, session):
        with pytest.raises(PreconditionError):
            engine.sync(session)


@pytest.fixture
def operator_commit(provisioned, source_repo):
    """A commit on the session branch in the source repository, made before patching."""
    git(source_repo, "checkout", "--quiet", provisioned.branch)
    write(source_repo / "operator.txt", "committed by the operator\n")
    tip = commit_all(source_repo, "operator commit")
    git(source_repo, "checkout", "--quiet", "main")
    return tip


def _raise_git_error(*args, **kwargs):
    raise GitError(["git", "simulated"], 1, "fatal: permission denied")


class TestRollback:
    @pytest.mark.parametrize("method, step", [
        ("reset_hard", SyncStep.RESET),
        ("clean", SyncStep.CLEAN),
    ])
    def test_failure_restores_branch(self, engine, provisioned, clone, source_repo, operator_commit,
                                     monkeypatch, method, step):
        make_typical_changes(clone.path)
        monkeypatch.setattr(GitRepository, method, _raise_git_error)

        with pytest.raises(SyncError) as excinfo:
            engine.sync(provisioned)

        assert excinfo.value.rolled_back
        assert excinfo.value.step == step
        assert git(source_repo, "rev-parse", provisioned.branch) == operator_commit
        assert (source_repo / "operator.txt").read_text() == "committed by the operator\n"
        assert (source_repo / "src" / "util.py").exists()
        assert not (source_repo / "docs" / "new.md").exists()
        assert status_porcelain(source_repo) == ""
        assert backup_branches(source_repo) == []

    def test_failure_without_backup_is_not_rolled_back(self, engine, provisioned, clone, monkeypatch):
        make_typical_changes(clone.path)

        def no_backup(self, name, start=None, check=True):
            return CommandResult(argv=["git", "branch", name], returncode=128, stderr="fatal: simulated")

        monkeypatch.setattr(GitRepository, "create_branch", no_backup)
        monkeypatch.setattr(GitRepository, "reset_hard", _raise_git_error)

        with pytest.raises(SyncError) as excinfo:
            engine.sync(provisioned)
        assert not excinfo.value.rolled_back

    def test_failed_rollback_keeps_backup(self, engine, provisioned, clone, source_repo, monkeypatch):
        make_typical_changes(clone.path)
        monkeypatch.setattr(GitRepository, "reset_hard", _raise_git_error)

        def broken_rename(self, old, new, force=False, check=True):
            return CommandResult(argv=["git", "branch", "-m"], returncode=128, stderr="fatal: simulated")

        monkeypatch.setattr(GitRepository, "rename_branch", broken_rename)

        with pytest.raises(RollbackError) as excinfo:
            engine.sync(provisioned)
        assert excinfo.value.backup_branch == f"{provisioned.branch}.backup.1000"
        assert excinfo.value.backup_branch in heads(source_repo)


class TestFallback:
    def test_failed_apply_falls_back_to_copy(self, engine, provisioned, clone, source, source_repo, monkeypatch):
        make_typical_changes(clone.path)
        branch_tip = source.rev_parse(provisioned.branch)

        def failing_apply(self, patch_file, three_way=True, index=True):
            return CommandResult(argv=["git", "apply"], returncode=1, stderr="error: patch failed")

        monkeypatch.setattr(GitRepository, "apply_patch", failing_apply)

        result = engine.sync(provisioned)

        assert result.outcome == SyncOutcome.FALLBACK_COPIED
        assert result.copy_method == "python"
        assert result.has_warning(WarningKind.RENAMES_LOST)
        assert source.index_tree() == clone.tree_id("HEAD")
        assert not source.has_unstaged_changes()
        assert source.rev_parse(provisioned.branch) == branch_tip
        assert backup_branches(source_repo) == []

    def test_conflicting_base_falls_back_to_clone_content(self, engine, provisioned, clone, source, source_repo):
        write(source_repo / "README.md", "# project, rewritten on main\n")
        commit_all(source_repo, "conflicting edit on main")
        write(clone.path / "README.md", "# project, rewritten in session\n")

        result = engine.sync(provisioned)

        assert result.outcome == SyncOutcome.FALLBACK_COPIED
        assert (source_repo / "README.md").read_text() == "# project, rewritten in session\n"
        assert source.index_tree() == clone.tree_id("HEAD")

    def test_fallback_failure_rolls_back(self, engine, provisioned, clone, source_repo, operator_commit, monkeypatch):
        make_typical_changes(clone.path)

        def failing_apply(self, patch_file, three_way=True, index=True):
            return CommandResult(argv=["git", "apply"], returncode=1, stderr="error: patch failed")

        def failing_mirror(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(GitRepository, "apply_patch", failing_apply)
        monkeypatch.setattr("devbox.core.sync.mirror_tree", failing_mirror)

        with pytest.raises(SyncError) as excinfo:
            engine.sync(provisioned)

        assert excinfo.value.rolled_back
        assert excinfo.value.step == SyncStep.FALLBACK_COPY
        assert git(source_repo, "rev-parse", provisioned.branch) == operator_commit
        assert status_porcelain(source_repo) == ""


class TestBackupNaming:
    def test_collision_gets_suffix(self, engine, provisioned, source, source_repo):
        git(source_repo, "branch", f"{provisioned.branch}.backup.1000")
        assert engine._backup_name(source, provisioned.branch) == f"{provisioned.branch}.backup.1000-1"
