# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/storage/mirror.py

"""
Archive-preserving directory mirroring.

mirror_tree copies a working tree over another one, preserving permissions,
timestamps and symlinks, and skipping version-control metadata. rsync is used
when it is installed; otherwise the copy is done in-process.
"""

import os
import shutil
from pathlib import Path
from typing import Iterable, Literal

import loguru

from devbox.system.exceptions import CommandError, ToolNotFoundError
from devbox.system.execution import CommandExecutor

logger = loguru.logger

DEFAULT_EXCLUDES = (".git",)


def clear_tree(path: Path, keep: Iterable[str] = DEFAULT_EXCLUDES) -> None:
    """Delete every entry directly under path except the names in keep."""
    keep = set(keep)
    for entry in os.scandir(path):
        if entry.name in keep:
            continue
        if entry.is_dir(follow_symlinks=False):
            shutil.rmtree(entry.path)
        else:
            os.unlink(entry.path)


def _rsync(source: Path, dest: Path, exclude: Iterable[str], executor: CommandExecutor) -> None:
    rsync_cmd = ["rsync", "-a"]
    rsync_cmd += [f"--exclude={name}" for name in exclude]
    # Trailing slashes: copy the contents of source into dest
    rsync_cmd += [f"{source}/", f"{dest}/"]
    executor.run(rsync_cmd, check=True)


def _python_copy(source: Path, dest: Path, exclude: Iterable[str]) -> None:
    """copytree with symlinks kept as links and existing directories merged.

    Existing symlinks in dest are not replaced; callers clear dest first.
    """
    shutil.copytree(
        source,
        dest,
        symlinks=True,
        ignore=shutil.ignore_patterns(*exclude),
        dirs_exist_ok=True,
    )


def mirror_tree(
    source: Path,
    dest: Path,
    exclude: Iterable[str] = DEFAULT_EXCLUDES,
    method: Literal["auto", "rsync", "python"] = "auto",
    executor: CommandExecutor | None = None,
) -> str:
    """Copy the contents of source over dest.

    Args:
        source: Directory whose contents are copied
        dest: Existing directory receiving the copy
        exclude: Entry names skipped at every level
        method: "rsync", "python", or "auto" (rsync when installed)
        executor: Command executor for rsync

    Returns:
        Name of the method actually used

    Raises:
        CommandError: If rsync fails
        ToolNotFoundError: If method is "rsync" and rsync is not installed
        OSError: If the in-process copy fails
    """
    executor = executor or CommandExecutor()
    exclude = tuple(exclude)

    if method == "rsync" or (method == "auto" and executor.which("rsync")):
        if executor.which("rsync") is None:
            raise ToolNotFoundError("rsync")
        logger.debug(f"Mirroring {source} -> {dest} with rsync")
        _rsync(source, dest, exclude, executor)
        return "rsync"

    logger.debug(f"Mirroring {source} -> {dest} in-process")
    try:
        _python_copy(source, dest, exclude)
    except shutil.Error as e:
        raise CommandError(["copytree", str(source), str(dest)], 1, message=f"Failed to copy files: {e}")
    return "python"
