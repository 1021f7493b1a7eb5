from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .command import CommandRunner

logger = logging.getLogger(__name__)

FAT_TYPES = ("vfat", "fat", "fat12", "fat16", "fat32")


@dataclass(frozen=True)
class BlockDevice:
    name: str
    size_bytes: int
    dev_type: str
    fs_type: str = ""


class _HasFsType(Protocol):
    fs_type: str


def parse_lsblk(output: str) -> List[BlockDevice]:
    """Parse `lsblk -lnpb -o NAME,SIZE,TYPE,FSTYPE` (sizes in bytes)."""

    devices: List[BlockDevice] = []
    for line in output.splitlines():
        parts = line.split(None, 3)
        if len(parts) < 3 or not parts[1].isdigit():
            continue
        devices.append(
            BlockDevice(
                name=parts[0],
                size_bytes=int(parts[1]),
                dev_type=parts[2],
                fs_type=parts[3].strip() if len(parts) > 3 else "",
            )
        )
    return devices


def list_block_devices(dev: str, runner: CommandRunner) -> List[BlockDevice]:
    r = runner.run(["lsblk", "-lnpb", "-o", "NAME,SIZE,TYPE,FSTYPE", dev])
    return parse_lsblk(r.stdout or "")


def select_efi(rows: Sequence[_HasFsType]) -> Optional[_HasFsType]:
    """First partition carrying a FAT filesystem, or None."""

    for row in rows:
        if getattr(row, "dev_type", "part") != "part":
            continue
        if (row.fs_type or "").lower() in FAT_TYPES:
            return row
    return None


def detect_fs_type(dev: str, runner: CommandRunner) -> str:
    """Return the filesystem type of a block device ('' when unknown)."""

    r = runner.run(["blkid", "-o", "value", "-s", "TYPE", dev], check=False)
    fs_type = (r.stdout or "").strip()
    logger.info("Detected filesystem on %s: %s", dev, fs_type or "unknown")
    return fs_type
