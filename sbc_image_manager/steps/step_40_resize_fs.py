from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..lib.block import detect_fs_type
from ..lib.resize import FsType, resize_filesystem

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class ResizeFilesystemStep:
    """Grow filesystems that are resized unmounted (ext4); btrfs waits for the mount."""

    step_id = "40_resize_fs"

    def run(self, session: "Session") -> None:
        device = session.root_partition
        if not device:
            raise RuntimeError("root partition missing; run attach step first")

        session.root_fs_type = FsType.parse(detect_fs_type(device, session.runner))
        outcome = resize_filesystem(
            device,
            session.root_fs_type,
            mount_root=session.mount_root,
            mounted=False,
            runner=session.runner,
        )
        if outcome is None:
            logger.info("%s resize deferred until mounted", session.root_fs_type.value)
