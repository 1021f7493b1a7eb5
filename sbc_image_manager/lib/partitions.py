from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..errors import DependencyMissing, InsufficientSpaceError, NoRootPartitionError, ValidationFailure
from .command import CommandRunner, command_exists
from .loop import attach, release

logger = logging.getLogger(__name__)

ROOT_FS_TYPES = ("ext4", "btrfs")

# GPT keeps a 33-sector backup table after the last usable sector.
GPT_BACKUP_SECTORS = 34


@dataclass(frozen=True)
class PartitionRecord:
    index: int
    start: int
    end: int
    fs_type: str = ""

    @property
    def span(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class PartitionTable:
    device: str
    disk_sectors: int
    sector_size: int
    table_type: str
    records: List[PartitionRecord] = field(default_factory=list)

    @property
    def partitioned(self) -> bool:
        # parted reports a bare filesystem as a "loop" label with one pseudo partition
        return self.table_type != "loop"

    @property
    def last_usable_sector(self) -> int:
        if self.table_type == "gpt":
            return self.disk_sectors - GPT_BACKUP_SECTORS
        return self.disk_sectors - 1


def _sectors(value: str) -> int:
    return int(value.strip().rstrip("s"))


def parse_parted_machine(output: str) -> Optional[PartitionTable]:
    """Parse `parted -ms <dev> unit s print`.

    Returns None when the output holds no device line (nothing recognizable).
    """

    disk: Optional[List[str]] = None
    records: List[PartitionRecord] = []
    for raw in output.splitlines():
        line = raw.strip().rstrip(";")
        if not line or line == "BYT":
            continue
        parts = line.split(":")
        if line.startswith("/"):
            disk = parts
            continue
        if len(parts) < 4 or not parts[0].isdigit():
            continue
        records.append(
            PartitionRecord(
                index=int(parts[0]),
                start=_sectors(parts[1]),
                end=_sectors(parts[2]),
                fs_type=parts[4].strip() if len(parts) > 4 else "",
            )
        )

    if disk is None or len(disk) < 6:
        return None

    table_type = disk[5].strip()
    return PartitionTable(
        device=disk[0],
        disk_sectors=_sectors(disk[1]),
        sector_size=int(disk[3] or 512),
        table_type=table_type,
        records=records if table_type != "loop" else [],
    )


def read_partition_table(dev: str, runner: CommandRunner) -> Optional[PartitionTable]:
    r = runner.run(["parted", "-ms", dev, "unit", "s", "print"], check=False)
    if r.returncode != 0:
        logger.warning("parted could not read %s: %s", dev, (r.stderr or "").strip())
        return None
    return parse_parted_machine(r.stdout or "")


def select_root(records: Sequence[PartitionRecord]) -> Optional[PartitionRecord]:
    """Pick the root partition.

    First ext4/btrfs row in table order wins; otherwise the row with the
    largest span (first one on ties). An empty table yields None, meaning
    the whole device holds the filesystem.
    """

    for rec in records:
        if rec.fs_type in ROOT_FS_TYPES:
            return rec

    best: Optional[PartitionRecord] = None
    for rec in records:
        if best is None or rec.span > best.span:
            best = rec
    return best


def plan_growth(table: PartitionTable, root: PartitionRecord) -> int:
    """Return the new end sector for root.

    The partition may extend up to one sector before the next partition
    (by index) or to the last usable sector of the device.
    """

    next_start: Optional[int] = None
    for rec in table.records:
        if rec.index > root.index and (next_start is None or rec.start < next_start):
            next_start = rec.start

    new_end = (next_start - 1) if next_start is not None else table.last_usable_sector

    if new_end <= root.start or new_end < root.end:
        raise InsufficientSpaceError(
            f"No space to expand partition {root.index}: "
            f"start={root.start}s end={root.end}s limit={new_end}s"
        )
    return new_end


def grow_partition(image: str, target_bytes: int, runner: CommandRunner) -> Optional[int]:
    """Extend the image file to target_bytes and its root partition to fill it.

    Returns the new end sector, or None when nothing was grown.
    """

    size = os.path.getsize(image)
    if size >= target_bytes:
        logger.info("Image is already %d bytes (>= %d), skipping resize", size, target_bytes)
        return None

    logger.info("Growing image file %s to %d bytes", image, target_bytes)
    runner.run(["truncate", "-s", str(target_bytes), image])

    dev = attach(image, runner)
    try:
        table = read_partition_table(dev.path, runner)
        if table is None:
            if runner.dry_run:
                logger.info("[DRY-RUN] Partition table not available; skipping partition growth")
                return None
            raise ValidationFailure(f"{image} is not a recognized disk image")

        if not table.partitioned:
            logger.info("Unpartitioned image; the filesystem spans the whole device")
            return None
        if not table.records:
            raise NoRootPartitionError(f"No partitions found in {image}")

        root = select_root(table.records)
        assert root is not None

        if table.table_type == "gpt" and root.index == max(r.index for r in table.records):
            if not command_exists("sgdisk"):
                raise DependencyMissing("Missing required command: sgdisk (needed for GPT images)")
            # Move the backup GPT header to the new end of the disk.
            runner.run(["sgdisk", "-e", dev.path])

        new_end = plan_growth(table, root)
        logger.info("Resizing partition %d to end at sector %d", root.index, new_end)
        runner.run(["parted", "-s", dev.path, "resizepart", str(root.index), f"{new_end}s"])
        runner.run(["partprobe", dev.path])
        return new_end
    finally:
        release(dev, runner)
