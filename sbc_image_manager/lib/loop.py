from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..errors import AttachError, CommandError
from .command import CommandRunner

logger = logging.getLogger(__name__)

# Stand-in device name reported while previewing; nothing is attached.
DRY_RUN_LOOP = "/dev/loopN"

# /dev/loop3: [2049]:131 (/srv/images/debian.img)
_LOSETUP_LINE = re.compile(r"^(/dev/loop\d+):.*?\((.*)\)\s*$")


@dataclass(frozen=True)
class LoopDevice:
    path: str
    image: str


def _backing_name(backing: str) -> str:
    if backing.endswith(" (deleted)"):
        backing = backing[: -len(" (deleted)")]
    return Path(backing).name


def find_attached(image: str, runner: CommandRunner) -> List[str]:
    """Loop devices whose backing file has the same filename as image."""

    r = runner.run(["losetup", "-a"], check=False)
    name = Path(image).name
    found: List[str] = []
    for line in (r.stdout or "").splitlines():
        line = line.strip()
        if not line:
            continue
        m = _LOSETUP_LINE.match(line)
        if m:
            if _backing_name(m.group(2)) == name:
                found.append(m.group(1))
        elif name in line and line.startswith("/dev/loop"):
            found.append(line.split(":", 1)[0])
    return found


def detach_stragglers(image: str, runner: CommandRunner) -> List[str]:
    """Force-detach leftovers from earlier runs so the next attach is not busy."""

    detached: List[str] = []
    for dev in find_attached(image, runner):
        logger.info("Detaching stale loop device %s (bound to %s)", dev, Path(image).name)
        runner.run(["losetup", "-d", dev])
        detached.append(dev)
    return detached


def attach(image: str, runner: CommandRunner) -> LoopDevice:
    """Bind image to the first free loop device with partition scanning."""

    detach_stragglers(image, runner)
    try:
        r = runner.run(["losetup", "--show", "-Pf", image])
    except CommandError as e:
        raise AttachError(f"Failed to setup loop device for {image}: {e.stderr.strip() or e}") from e

    dev = (r.stdout or "").strip()
    if not dev:
        if runner.dry_run:
            dev = DRY_RUN_LOOP
        else:
            raise AttachError(f"Failed to setup loop device for {image}: losetup printed no device")

    logger.info("Attached %s to %s", image, dev)
    return LoopDevice(path=dev, image=image)


def is_attached(dev: LoopDevice, runner: CommandRunner) -> bool:
    """True when dev.path is attached and still backed by dev.image.

    Loop numbers get reused, so a device named in an old session record
    may belong to some other image by now.
    """

    r = runner.run(["losetup", dev.path], check=False)
    if r.returncode != 0:
        return False
    if runner.dry_run:
        return True
    m = _LOSETUP_LINE.match((r.stdout or "").strip())
    if m is None or _backing_name(m.group(2)) != Path(dev.image).name:
        logger.warning("%s is not bound to %s; leaving it alone", dev.path, Path(dev.image).name)
        return False
    return True


def release(dev: LoopDevice, runner: CommandRunner) -> bool:
    """Detach dev. Returns False when it was already gone."""

    if not is_attached(dev, runner):
        logger.debug("Loop device %s already detached", dev.path)
        return False
    runner.run(["losetup", "-d", dev.path])
    logger.info("Detached loop device %s", dev.path)
    return True


def partition_path(dev: str, index: int) -> str:
    # loop/nvme/mmcblk devices use p suffix
    if dev.endswith(tuple("0123456789")) or dev == DRY_RUN_LOOP:
        return f"{dev}p{index}"
    return f"{dev}{index}"
