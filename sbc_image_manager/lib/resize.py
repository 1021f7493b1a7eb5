from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict

from ..errors import CommandError, ResizeFailure
from .command import CommandRunner

logger = logging.getLogger(__name__)


class FsType(enum.Enum):
    EXT4 = "ext4"
    BTRFS = "btrfs"
    XFS = "xfs"
    VFAT = "vfat"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, value: str) -> "FsType":
        v = (value or "").strip().lower()
        if v in {"vfat", "fat", "fat16", "fat32"}:
            return cls.VFAT
        for member in cls:
            if member.value == v and member is not cls.UNSUPPORTED:
                return member
        return cls.UNSUPPORTED


@dataclass(frozen=True)
class ResizeOutcome:
    fs_type: FsType
    resized: bool
    detail: str


@dataclass(frozen=True)
class _Handler:
    requires_mount: bool
    action: Callable[[str, str, CommandRunner], ResizeOutcome]


def _grow_ext4(device: str, mount_root: str, runner: CommandRunner) -> ResizeOutcome:
    logger.info("Resizing ext4 filesystem on %s", device)
    r = runner.run(["e2fsck", "-f", "-y", device], check=False)
    # 1 and 2 mean errors were found and corrected
    if r.returncode >= 4:
        raise CommandError(r.argv, r.returncode, r.stderr)
    runner.run(["resize2fs", device])
    return ResizeOutcome(FsType.EXT4, True, "grown to fill partition")


def _grow_btrfs(device: str, mount_root: str, runner: CommandRunner) -> ResizeOutcome:
    logger.info("Resizing Btrfs filesystem mounted at %s", mount_root)
    runner.run(["btrfs", "filesystem", "resize", "max", mount_root])
    return ResizeOutcome(FsType.BTRFS, True, "grown to max")


def _warn_xfs(device: str, mount_root: str, runner: CommandRunner) -> ResizeOutcome:
    logger.warning("XFS detected on %s; it needs offline tooling, not resizing", device)
    logger.warning("Consider using a larger image instead")
    return ResizeOutcome(FsType.XFS, False, "xfs requires offline resize")


def _skip_fat(device: str, mount_root: str, runner: CommandRunner) -> ResizeOutcome:
    logger.info("FAT filesystem on %s; boot partitions are not grown", device)
    return ResizeOutcome(FsType.VFAT, False, "boot partition skipped")


def _skip_unsupported(device: str, mount_root: str, runner: CommandRunner) -> ResizeOutcome:
    logger.warning("Unknown filesystem type on %s; skipping filesystem resize", device)
    return ResizeOutcome(FsType.UNSUPPORTED, False, "unsupported filesystem")


HANDLERS: Dict[FsType, _Handler] = {
    FsType.EXT4: _Handler(requires_mount=False, action=_grow_ext4),
    FsType.BTRFS: _Handler(requires_mount=True, action=_grow_btrfs),
    FsType.XFS: _Handler(requires_mount=False, action=_warn_xfs),
    FsType.VFAT: _Handler(requires_mount=False, action=_skip_fat),
    FsType.UNSUPPORTED: _Handler(requires_mount=False, action=_skip_unsupported),
}


def requires_mount(fs_type: FsType) -> bool:
    return HANDLERS[fs_type].requires_mount


def resize_filesystem(
    device: str,
    fs_type: FsType,
    *,
    mount_root: str,
    mounted: bool,
    runner: CommandRunner,
) -> ResizeOutcome | None:
    """Grow the filesystem on device.

    ext4 is checked and grown while unmounted, btrfs only once mounted.
    Returns None when this phase is not the one the handler runs in.
    """

    handler = HANDLERS[fs_type]
    if handler.requires_mount != mounted:
        return None
    try:
        return handler.action(device, mount_root, runner)
    except CommandError as e:
        raise ResizeFailure(f"Failed to resize {fs_type.value} filesystem on {device}: {e}") from e
