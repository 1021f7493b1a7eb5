from __future__ import annotations

import logging
import os
import re
from typing import Iterable, List

from ..errors import DependencyMissing, InvalidArguments, NotRootError
from .command import command_exists

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = (
    "losetup",
    "mount",
    "umount",
    "mountpoint",
    "chroot",
    "parted",
    "partprobe",
    "blkid",
    "lsblk",
    "e2fsck",
    "resize2fs",
    "btrfs",
    "truncate",
    "file",
    "cp",
)

_SHELL_META = re.compile(r"[;&|`$()<>]")


def check_dependencies(commands: Iterable[str] = REQUIRED_COMMANDS) -> None:
    missing: List[str] = [c for c in commands if not command_exists(c)]
    if missing:
        raise DependencyMissing(f"Missing required command(s): {', '.join(missing)}")


def check_interpreter(path: str) -> None:
    if not (os.path.isfile(path) and os.access(path, os.X_OK)):
        raise DependencyMissing(f"{path} not found or not executable")


def require_root() -> None:
    if os.geteuid() != 0:
        raise NotRootError("This tool must be run as root")


def validate_path(value: str, name: str) -> str:
    """Reject shell metacharacters in user-supplied paths."""

    if _SHELL_META.search(value):
        raise InvalidArguments(f"Invalid characters in {name}: {value}")
    return value
