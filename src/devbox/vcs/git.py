# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/vcs/git.py

"""
Git capability used by every devbox component.

GitRepository binds an explicit repository path; every call runs
`git -C <path>` so nothing depends on the process working directory. Callers
receive typed values (refs, booleans, ChangeSet, patch bytes) rather than raw
command output.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import loguru

from devbox.data.changeset import ChangeSet
from devbox.system.exceptions import GitError
from devbox.system.execution import CommandExecutor, CommandResult

logger = loguru.logger

# Identity used for commits inside isolated repositories when none is configured
FALLBACK_IDENTITY = ("devbox", "devbox@localhost")


class GitRepository:
    """A git repository at a fixed path."""

    def __init__(self, path: Path, executor: CommandExecutor | None = None):
        self.path = Path(path)
        self.executor = executor or CommandExecutor()

    def __repr__(self) -> str:
        return f"GitRepository({str(self.path)!r})"

    # ---- plumbing ----

    def _git(self, *args: str, check: bool = True, text: bool = True,
             input: str | bytes | None = None, config: Iterable[str] = ()) -> CommandResult:
        argv = ["git"]
        for item in config:
            argv += ["-c", item]
        argv += ["-C", str(self.path), *args]
        return self.executor.run(argv, input=input, check=check, text=text, error_cls=GitError)

    def _ok(self, *args: str) -> bool:
        return self._git(*args, check=False).ok

    def _out(self, *args: str) -> str:
        return self._git(*args).stdout.strip()

    def _lines(self, *args: str) -> list[str]:
        return [line for line in self._git(*args).stdout.splitlines() if line]

    # ---- queries ----

    def exists(self) -> bool:
        return self.path.is_dir()

    def is_repository(self) -> bool:
        return (self.path / ".git").exists()

    def rev_parse(self, ref: str) -> Optional[str]:
        """Resolve ref to an object id, or None when it does not exist."""
        result = self._git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        return result.stdout.strip() if result.ok and result.stdout.strip() else None

    def ref_exists(self, ref: str) -> bool:
        return self.rev_parse(ref) is not None

    def branch_exists(self, name: str) -> bool:
        return self._ok("show-ref", "--verify", "--quiet", f"refs/heads/{name}")

    def tree_id(self, ref: str) -> str:
        return self._out("rev-parse", f"{ref}^{{tree}}")

    def current_branch(self) -> str:
        return self._out("rev-parse", "--abbrev-ref", "HEAD")

    def head(self) -> str:
        return self._out("rev-parse", "HEAD")

    def root_commit(self) -> str:
        """Return the single parentless commit reachable from HEAD.

        Raises:
            GitError: If HEAD has no root or more than one root
        """
        roots = self._lines("rev-list", "--max-parents=0", "HEAD")
        if len(roots) != 1:
            raise GitError(
                ["git", "-C", str(self.path), "rev-list", "--max-parents=0", "HEAD"], 1,
                message=f"Could not find a single initial commit in {self.path} (found {len(roots)})",
            )
        return roots[0]

    def has_unstaged_changes(self) -> bool:
        return not self._ok("diff", "--quiet")

    def has_staged_changes(self) -> bool:
        return not self._ok("diff", "--cached", "--quiet")

    def has_uncommitted_changes(self) -> bool:
        """True when there is any staged or unstaged diff against HEAD."""
        return self.has_unstaged_changes() or self.has_staged_changes()

    def untracked_files(self, include_ignored: bool = True) -> list[str]:
        """Untracked files (`ls-files --others`), ignored ones included unless asked not to."""
        args = ["ls-files", "--others", "-z"] + ([] if include_ignored else ["--exclude-standard"])
        return self._git(*args).stdout.split("\0")[:-1]

    def ls_files(self) -> list[str]:
        return self._git("ls-files", "-z").stdout.split("\0")[:-1]

    def ls_tree_names(self, ref: str) -> list[str]:
        return self._git("ls-tree", "-r", "-z", "--name-only", ref).stdout.split("\0")[:-1]

    def has_remote(self, name: str) -> bool:
        return self._ok("remote", "get-url", name)

    def index_tree(self) -> str:
        """Write the index as a tree object and return its id."""
        return self._out("write-tree")

    def config_get(self, key: str) -> Optional[str]:
        result = self._git("config", "--get", key, check=False)
        return result.stdout.strip() if result.ok else None

    # ---- mutations ----

    def init(self, initial_branch: str = "main") -> None:
        self.executor.run(["git", "init", "--quiet", str(self.path)], check=True, error_cls=GitError)
        # symbolic-ref works on every git version, unlike `init -b`
        self._git("symbolic-ref", "HEAD", f"refs/heads/{initial_branch}")

    def config_set(self, key: str, value: str) -> None:
        self._git("config", key, value)

    def add(self, paths: Iterable[str], force: bool = False) -> CommandResult:
        """Stage paths taken literally (no glob magic); the result is returned, not raised.

        Paths are passed on stdin so arbitrarily many can be added in one call.
        """
        pathspecs = "".join(f":(literal){p}\0" for p in paths)
        args = ["add"] + (["-f"] if force else []) + ["--pathspec-from-file=-", "--pathspec-file-nul"]
        return self._git(*args, check=False, input=pathspecs)

    def add_all(self) -> None:
        self._git("add", "-A")

    def _identity_config(self) -> list[str]:
        if self.config_get("user.email") and self.config_get("user.name"):
            return []
        name, email = FALLBACK_IDENTITY
        return [f"user.name={name}", f"user.email={email}"]

    def commit(self, message: str, allow_empty: bool = False) -> str:
        args = ["commit", "--quiet", "--no-verify", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        self._git(*args, config=self._identity_config())
        return self.head()

    def create_branch(self, name: str, start: str | None = None, check: bool = True) -> CommandResult:
        args = ["branch", name] + ([start] if start else [])
        return self._git(*args, check=check)

    def checkout(self, ref: str, force: bool = False, check: bool = True) -> CommandResult:
        args = ["checkout", "--quiet"] + (["-f"] if force else []) + [ref]
        return self._git(*args, check=check)

    def checkout_new_branch(self, name: str, start: str | None = None) -> None:
        args = ["checkout", "--quiet", "-b", name] + ([start] if start else [])
        self._git(*args)

    def delete_branch(self, name: str, check: bool = True) -> CommandResult:
        return self._git("branch", "-D", name, check=check)

    def rename_branch(self, old: str, new: str, force: bool = False, check: bool = True) -> CommandResult:
        return self._git("branch", "-M" if force else "-m", old, new, check=check)

    def reset_hard(self, ref: str, check: bool = True) -> CommandResult:
        return self._git("reset", "--quiet", "--hard", ref, check=check)

    def clean(self, check: bool = True) -> CommandResult:
        """Remove untracked and ignored files and directories (`clean -fdx`)."""
        return self._git("clean", "-fdxq", check=check)

    def fetch(self, remote: str = "origin") -> CommandResult:
        return self._git("fetch", "--quiet", remote, check=False)

    # ---- diff / patch ----

    def diff_name_status(self, base: str, head: str, similarity: int = 90) -> ChangeSet:
        """Classify every path changed between two commits.

        Copy/rename detection runs at the given similarity threshold with
        complete-rewrite detection (-B) enabled.
        """
        output = self._git(
            "diff", "--name-status", "-z", "--no-ext-diff",
            f"--find-renames={similarity}%", f"--find-copies={similarity}%", "-B",
            base, head,
        ).stdout
        return ChangeSet.from_name_status(output)

    def format_patch(self, base: str, head: str, similarity: int = 90) -> bytes:
        """Produce a mail-formatted patch taking base's tree to head's tree.

        The intermediate commits are squashed into one dangling commit so the
        patch carries exactly the cumulative difference; no ref is moved.
        Returns b"" when both trees are identical.
        """
        if self.tree_id(base) == self.tree_id(head):
            return b""
        squashed = self._git(
            "commit-tree", f"{head}^{{tree}}", "-p", base, "-m", "devbox sync",
            config=self._identity_config(),
        ).stdout.strip()
        return self._git(
            "format-patch", "-1", "--stdout", "--no-signature",
            "--binary", "--full-index", "-B",
            f"--find-renames={similarity}%", f"--find-copies={similarity}%",
            squashed,
            text=False, config=["core.quotepath=off"],
        ).stdout

    def apply_patch(self, patch_file: Path, three_way: bool = True, index: bool = True) -> CommandResult:
        """Apply a patch file without committing; the result is returned, not raised."""
        args = ["apply"]
        if three_way:
            args.append("--3way")
        if index:
            args.append("--index")
        args.append(str(patch_file))
        return self._git(*args, check=False)

    # ---- construction ----

    @classmethod
    def clone(cls, source: str, branch: str, dest: Path,
              executor: CommandExecutor | None = None) -> "GitRepository":
        """Clone one branch with line-ending conversion disabled."""
        executor = executor or CommandExecutor()
        executor.run(
            ["git", "clone", "--quiet", "--config", "core.autocrlf=false",
             "--branch", branch, source, str(dest)],
            check=True, error_cls=GitError,
        )
        return cls(dest, executor)
