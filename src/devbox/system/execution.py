# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.12
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/system/execution.py

"""
Thin wrapper around subprocess for the external tools devbox drives.

All git, docker and rsync invocations go through CommandExecutor so that
argv and exit codes are logged consistently and missing executables surface
as ToolNotFoundError instead of a bare FileNotFoundError.
"""

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Type

import loguru

from devbox.system.exceptions import CommandError, ToolNotFoundError

logger = loguru.logger


@dataclass
class CommandResult:
    """Outcome of one external command."""
    argv: list[str]
    returncode: int
    stdout: str | bytes = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def raise_for_status(self, error_cls: Type[CommandError] = CommandError) -> "CommandResult":
        if not self.ok:
            raise error_cls(self.argv, self.returncode, self.stderr)
        return self


class CommandExecutor:
    """Run external commands with logging and typed results."""

    def run(
        self,
        argv: Sequence[str],
        cwd: Path | None = None,
        input: str | bytes | None = None,
        check: bool = False,
        text: bool = True,
        error_cls: Type[CommandError] = CommandError,
    ) -> CommandResult:
        """Run a command to completion and capture its output.

        Args:
            argv: Command and arguments
            cwd: Working directory (None keeps the process cwd)
            input: Data written to stdin
            check: Raise error_cls on a non-zero exit status
            text: Decode stdout as text; False returns raw bytes
            error_cls: CommandError subclass raised when check is True

        Returns:
            CommandResult with exit status and captured output
        """
        argv = [str(a) for a in argv]
        logger.debug(f"exec: {' '.join(argv)}" + (f" (cwd={cwd})" if cwd else ""))
        if isinstance(input, str) and not text:
            input = input.encode("utf-8")
        try:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                input=input,
                capture_output=True,
                encoding="utf-8" if text else None,
                errors="surrogateescape" if text else None,
            )
        except FileNotFoundError:
            raise ToolNotFoundError(argv[0])

        stderr = proc.stderr
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        result = CommandResult(argv=argv, returncode=proc.returncode, stdout=proc.stdout, stderr=stderr)
        logger.debug(f"exit {proc.returncode}: {argv[0]} {argv[1] if len(argv) > 1 else ''}")
        if proc.returncode != 0 and stderr:
            logger.debug(f"stderr: {stderr.strip()}")
        if check:
            result.raise_for_status(error_cls)
        return result

    def run_interactive(self, argv: Sequence[str], error_cls: Type[CommandError] = CommandError) -> int:
        """Run a command attached to the current terminal and return its exit status."""
        argv = [str(a) for a in argv]
        logger.debug(f"exec (interactive): {' '.join(argv)}")
        try:
            proc = subprocess.run(argv)
        except FileNotFoundError:
            raise ToolNotFoundError(argv[0])
        logger.debug(f"exit {proc.returncode}: {argv[0]}")
        return proc.returncode

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)
