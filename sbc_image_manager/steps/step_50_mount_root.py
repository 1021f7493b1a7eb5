from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..lib.resize import resize_filesystem

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class MountRootStep:
    step_id = "50_mount_root"

    def run(self, session: "Session") -> None:
        device = session.root_partition
        if not device:
            raise RuntimeError("root partition missing; run attach step first")

        session.mounts.mount_root(device)
        session.mounts.check_root_marker()

        if session.root_fs_type is not None:
            resize_filesystem(
                device,
                session.root_fs_type,
                mount_root=session.mount_root,
                mounted=True,
                runner=session.runner,
            )
