from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class MountEfiStep:
    step_id = "60_mount_efi"

    def run(self, session: "Session") -> None:
        if not session.efi_partition:
            return
        session.mounts.mount_efi(session.efi_partition)
