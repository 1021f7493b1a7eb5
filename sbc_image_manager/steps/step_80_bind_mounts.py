from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class BindMountsStep:
    step_id = "80_bind_mounts"

    def run(self, session: "Session") -> None:
        entries = session.mounts.bind_all()
        logger.info("Bind-mounted %d host paths into %s", len(entries), session.mount_root)
