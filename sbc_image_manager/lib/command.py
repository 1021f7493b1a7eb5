from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Sequence

from ..errors import CommandError, DependencyMissing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    input_text: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Never goes through a shell; argv is passed as-is.
    - dry_run logs but does not execute, and reports success.
    """

    argv_list = [str(a) for a in argv]

    if dry_run:
        logger.info("[DRY-RUN] Would run: %s", _fmt_argv(argv_list))
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    logger.info("CMD %s", _fmt_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise DependencyMissing(f"Missing required command: {argv_list[0]}") from e

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, p.stderr or "")

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


class CommandRunner:
    """run_cmd bound to one dry-run setting, handed to every component."""

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run

    def run(self, argv: Sequence[str], *, check: bool = True, input_text: str | None = None) -> CmdResult:
        return run_cmd(argv, check=check, input_text=input_text, dry_run=self.dry_run)

    def ok(self, argv: Sequence[str]) -> bool:
        return self.run(argv, check=False).returncode == 0

    def interactive(self, argv: Sequence[str]) -> int:
        """Run attached to the caller's terminal; blocks until the program exits."""

        argv_list = [str(a) for a in argv]
        if self.dry_run:
            logger.info("[DRY-RUN] Would run interactively: %s", _fmt_argv(argv_list))
            return 0
        logger.info("CMD (interactive) %s", _fmt_argv(argv_list))
        try:
            return subprocess.run(argv_list).returncode
        except FileNotFoundError as e:
            raise DependencyMissing(f"Missing required command: {argv_list[0]}") from e


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def is_mountpoint(path: str | os.PathLike[str], runner: CommandRunner) -> bool:
    if not os.path.lexists(path):
        return False
    return runner.ok(["mountpoint", "-q", str(path)])
