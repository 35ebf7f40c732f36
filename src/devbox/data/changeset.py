# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/data/changeset.py

"""
Typed path-level differences between two tree states.

A ChangeSet is built from structured ChangeEntry records, either parsed from
`git diff --name-status -z` output or derived from a format-patch stream.
Both constructors pass through the same normalization so that the summary
printed by `devbox diff` and the patch applied by `devbox patch` describe the
same set of paths.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

import loguru

logger = loguru.logger


class ChangeStatus(Enum):
    ADDED = "A"
    DELETED = "D"
    MODIFIED = "M"
    RENAMED = "R"
    COPIED = "C"


# Leading letter of a git status code -> status. T (type change) counts as a modification.
_STATUS_LETTERS = {
    "A": ChangeStatus.ADDED,
    "D": ChangeStatus.DELETED,
    "M": ChangeStatus.MODIFIED,
    "T": ChangeStatus.MODIFIED,
    "R": ChangeStatus.RENAMED,
    "C": ChangeStatus.COPIED,
}


@dataclass(frozen=True)
class ChangeEntry:
    """One classified path.

    For RENAMED and COPIED entries old_path is the origin and path the
    destination; similarity is the score git reported (informational only).
    """
    status: ChangeStatus
    path: str
    old_path: Optional[str] = None
    similarity: Optional[int] = None

    def key(self) -> tuple[str, str, Optional[str]]:
        return (self.status.value, self.path, self.old_path)

    def describe(self) -> str:
        if self.status == ChangeStatus.RENAMED:
            return f"{self.old_path} -> {self.path}"
        if self.status == ChangeStatus.COPIED:
            return f"{self.path} (copied from {self.old_path})"
        return self.path

    def to_dict(self) -> dict:
        return {
            "status": self.status.name.lower(),
            "path": self.path,
            "old_path": self.old_path,
            "similarity": self.similarity,
        }


def parse_status_code(code: str) -> tuple[Optional[ChangeStatus], Optional[int]]:
    """Split a status code such as 'R091' into its status and score."""
    if not code:
        return None, None
    status = _STATUS_LETTERS.get(code[0])
    score = int(code[1:]) if code[1:].isdigit() else None
    return status, score


def parse_name_status_z(output: str) -> list[ChangeEntry]:
    """Parse NUL-separated `git diff --name-status -z` output into entries.

    Entries whose path is empty or whitespace-only are discarded.
    """
    fields = output.split("\0")
    entries = []
    i = 0
    while i < len(fields):
        code = fields[i]
        i += 1
        if not code.strip():
            continue
        status, score = parse_status_code(code)
        if status in (ChangeStatus.RENAMED, ChangeStatus.COPIED):
            old_path, new_path = fields[i:i + 2] if i + 1 < len(fields) else ("", "")
            i += 2
            if not new_path.strip():
                continue
            entries.append(ChangeEntry(status, new_path, old_path=old_path, similarity=score))
        else:
            path = fields[i] if i < len(fields) else ""
            i += 1
            if status is None:
                logger.debug(f"Skipping unrecognized status code {code!r} for {path!r}")
                continue
            if not path.strip():
                continue
            entries.append(ChangeEntry(status, path, similarity=score))
    return entries


# ---- Patch parsing ----

_OCTAL_ESCAPE = re.compile(rb"\\([0-7]{3}|.)")
_C_ESCAPES = {b"n": b"\n", b"t": b"\t", b'"': b'"', b"\\": b"\\", b"a": b"\a",
              b"b": b"\b", b"f": b"\f", b"r": b"\r", b"v": b"\v"}


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of a path ("a/t\\tb" -> a/t<TAB>b)."""
    if not (len(path) >= 2 and path.startswith('"') and path.endswith('"')):
        return path

    def _sub(match: re.Match) -> bytes:
        token = match.group(1)
        if len(token) == 3:
            return bytes([int(token, 8)])
        return _C_ESCAPES.get(token, token)

    raw = path[1:-1].encode("utf-8", errors="surrogateescape")
    return _OCTAL_ESCAPE.sub(_sub, raw).decode("utf-8", errors="surrogateescape")


def _strip_prefix(path: str, prefix: str) -> str:
    path = _unquote(path)
    return path[len(prefix):] if path.startswith(prefix) else path


def _split_diff_git_line(rest: str) -> tuple[str, str]:
    """Split the 'a/X b/Y' part of a diff --git header.

    Only reliable when X == Y or the paths are quoted; callers prefer the
    explicit ---/+++ and rename/copy lines when present.
    """
    if rest.startswith('"'):
        end = rest.index('"', 1)
        while rest[end - 1] == "\\":
            end = rest.index('"', end + 1)
        old, new = rest[:end + 1], rest[end + 2:]
        return _strip_prefix(old, "a/"), _strip_prefix(new, "b/")
    half = (len(rest) - 1) // 2
    if len(rest) % 2 == 1 and rest[half] == " " and rest[2:half] == rest[half + 3:]:
        return rest[2:half], rest[half + 3:]
    old, _, new = rest.partition(" b/")
    return _strip_prefix(old, "a/"), new


@dataclass
class _PatchSection:
    old_path: Optional[str] = None
    new_path: Optional[str] = None
    status: ChangeStatus = ChangeStatus.MODIFIED
    similarity: Optional[int] = None

    def to_entry(self) -> Optional[ChangeEntry]:
        if self.status == ChangeStatus.DELETED:
            path = self.old_path
        else:
            path = self.new_path
        if not path or not path.strip():
            return None
        if self.status in (ChangeStatus.RENAMED, ChangeStatus.COPIED):
            return ChangeEntry(self.status, path, old_path=self.old_path, similarity=self.similarity)
        return ChangeEntry(self.status, path)


_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,(\d+))? \+\d+(?:,(\d+))? @@")


def parse_patch(patch: bytes | str) -> list[ChangeEntry]:
    """Derive change entries from a git format-patch (or git diff) stream.

    Hunk bodies are skipped by their line counts so that content lines such
    as '--- comment' are never mistaken for headers.
    """
    if isinstance(patch, bytes):
        patch = patch.decode("utf-8", errors="surrogateescape")

    entries = []
    section: Optional[_PatchSection] = None
    old_left = new_left = 0

    def _flush():
        if section is not None:
            entry = section.to_entry()
            if entry is not None:
                entries.append(entry)

    for line in patch.split("\n"):
        if old_left > 0 or new_left > 0:
            marker = line[:1]
            if marker in (" ", ""):
                old_left -= 1
                new_left -= 1
            elif marker == "-":
                old_left -= 1
            elif marker == "+":
                new_left -= 1
            continue
        if line.startswith("diff --git "):
            _flush()
            old, new = _split_diff_git_line(line[len("diff --git "):])
            section = _PatchSection(old_path=old, new_path=new)
            continue
        if section is None:
            continue
        hunk = _HUNK_HEADER.match(line)
        if hunk:
            old_left = int(hunk.group(1)) if hunk.group(1) is not None else 1
            new_left = int(hunk.group(2)) if hunk.group(2) is not None else 1
        elif line.startswith("new file mode"):
            section.status = ChangeStatus.ADDED
        elif line.startswith("deleted file mode"):
            section.status = ChangeStatus.DELETED
        elif line.startswith("rename from "):
            section.status = ChangeStatus.RENAMED
            section.old_path = _unquote(line[len("rename from "):])
        elif line.startswith("rename to "):
            section.new_path = _unquote(line[len("rename to "):])
        elif line.startswith("copy from "):
            section.status = ChangeStatus.COPIED
            section.old_path = _unquote(line[len("copy from "):])
        elif line.startswith("copy to "):
            section.new_path = _unquote(line[len("copy to "):])
        elif line.startswith("similarity index "):
            score = line[len("similarity index "):].rstrip("%")
            section.similarity = int(score) if score.isdigit() else None
        elif line.startswith("--- ") and line[4:] != "/dev/null":
            section.old_path = _strip_prefix(line[4:].split("\t")[0], "a/")
        elif line.startswith("+++ ") and line[4:] != "/dev/null":
            section.new_path = _strip_prefix(line[4:].split("\t")[0], "b/")
    _flush()
    return entries


# ---- ChangeSet ----

def _resolve_collisions(entries: list[ChangeEntry]) -> list[ChangeEntry]:
    """Prefer literal path identity over content similarity.

    A path that exists on both sides of the diff is reported as MODIFIED:
    - D path + A path (a type change, or a delete/re-add) becomes M path
    - R old->new where `new` is also reported DELETED becomes M new + D old
    - R old->new where `old` is also reported ADDED becomes M old + A new
    """
    deleted = {e.path for e in entries if e.status == ChangeStatus.DELETED}
    added = {e.path for e in entries if e.status == ChangeStatus.ADDED}
    if not deleted and not added:
        return entries

    resolved: list[ChangeEntry] = []
    consumed: set[tuple[ChangeStatus, str]] = set()
    for entry in entries:
        if entry.status == ChangeStatus.DELETED and entry.path in added:
            consumed.add((ChangeStatus.ADDED, entry.path))
            resolved.append(ChangeEntry(ChangeStatus.MODIFIED, entry.path))
        elif entry.status == ChangeStatus.ADDED and entry.path in deleted:
            consumed.add((ChangeStatus.DELETED, entry.path))
            resolved.append(ChangeEntry(ChangeStatus.MODIFIED, entry.path))
        elif entry.status == ChangeStatus.RENAMED and entry.path in deleted:
            logger.debug(f"Rename {entry.old_path} -> {entry.path} collides with deletion; keeping path identity")
            consumed.add((ChangeStatus.DELETED, entry.path))
            resolved.append(ChangeEntry(ChangeStatus.MODIFIED, entry.path))
            resolved.append(ChangeEntry(ChangeStatus.DELETED, entry.old_path))
        elif entry.status == ChangeStatus.RENAMED and entry.old_path in added:
            logger.debug(f"Rename {entry.old_path} -> {entry.path} collides with addition; keeping path identity")
            consumed.add((ChangeStatus.ADDED, entry.old_path))
            resolved.append(ChangeEntry(ChangeStatus.MODIFIED, entry.old_path))
            resolved.append(ChangeEntry(ChangeStatus.ADDED, entry.path))
        else:
            resolved.append(entry)

    result = []
    seen_modified = set()
    for entry in resolved:
        if (entry.status, entry.path) in consumed:
            continue
        if entry.status == ChangeStatus.MODIFIED:
            if entry.path in seen_modified:
                continue
            seen_modified.add(entry.path)
        result.append(entry)
    return result


@dataclass
class ChangeSet:
    """Classified path-level differences, in the order git emitted them."""
    entries: list[ChangeEntry] = field(default_factory=list)

    @classmethod
    def from_entries(cls, entries: Iterable[ChangeEntry]) -> "ChangeSet":
        return cls(entries=_resolve_collisions(list(entries)))

    @classmethod
    def from_name_status(cls, output: str) -> "ChangeSet":
        return cls.from_entries(parse_name_status_z(output))

    @classmethod
    def from_patch(cls, patch: bytes | str) -> "ChangeSet":
        return cls.from_entries(parse_patch(patch))

    def _with_status(self, *statuses: ChangeStatus) -> list[ChangeEntry]:
        return [e for e in self.entries if e.status in statuses]

    @property
    def renamed(self) -> list[ChangeEntry]:
        return self._with_status(ChangeStatus.RENAMED)

    @property
    def added(self) -> list[ChangeEntry]:
        """New files, including copies annotated with their origin."""
        return self._with_status(ChangeStatus.ADDED, ChangeStatus.COPIED)

    @property
    def modified(self) -> list[ChangeEntry]:
        return self._with_status(ChangeStatus.MODIFIED)

    @property
    def deleted(self) -> list[ChangeEntry]:
        return self._with_status(ChangeStatus.DELETED)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def counts(self) -> dict[str, int]:
        return {
            "new": len(self.added),
            "deleted": len(self.deleted),
            "modified": len(self.modified),
            "renamed": len(self.renamed),
        }

    def keys(self) -> set[tuple[str, str, Optional[str]]]:
        return {e.key() for e in self.entries}

    def to_dict(self) -> dict:
        return {
            "counts": self.counts(),
            "renamed": [e.to_dict() for e in self.renamed],
            "new": [e.to_dict() for e in self.added],
            "modified": [e.to_dict() for e in self.modified],
            "deleted": [e.to_dict() for e in self.deleted],
        }
