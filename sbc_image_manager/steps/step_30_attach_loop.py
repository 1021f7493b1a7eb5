from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import NoRootPartitionError, ValidationFailure
from ..lib.block import list_block_devices, select_efi
from ..lib.loop import attach, partition_path
from ..lib.partitions import read_partition_table, select_root

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class AttachLoopStep:
    step_id = "30_attach_loop"

    def run(self, session: "Session") -> None:
        runner = session.runner

        logger.info("Attaching image to loop device...")
        session.attach_started = True
        session.loop = attach(session.image_path, runner)
        session.save_record()
        dev = session.loop.path

        table = read_partition_table(dev, runner)
        if table is None and not session.dry_run:
            raise ValidationFailure(f"{session.image_path} is not a recognized disk image")

        if table is None or not table.partitioned:
            logger.info("Unpartitioned image detected.")
            session.root_partition = dev
            return

        logger.info("Partitioned image detected.")
        root = select_root(table.records)
        if root is None:
            raise NoRootPartitionError(f"Failed to detect root partition on {dev}")
        session.root_partition = partition_path(dev, root.index)

        efi = select_efi(list_block_devices(dev, runner))
        if efi is not None and efi.name != session.root_partition:
            session.efi_partition = efi.name
            logger.info("EFI partition: %s", efi.name)
        else:
            logger.info("No EFI partition found; skipping EFI mount")
