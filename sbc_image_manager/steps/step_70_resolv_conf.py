from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..lib.chroot import RESOLV_CONF

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class PrepareResolvConfStep:
    step_id = "70_resolv_conf"

    def run(self, session: "Session") -> None:
        if session.dry_run:
            logger.info(
                "Would save and replace %s with a placeholder for the host resolver",
                session.mounts.target(RESOLV_CONF),
            )
            return

        # Attach the guard before touching the file so cleanup sees partial work.
        guard = session.resolv_guard()
        guard.capture()
        session.save_record()
        logger.info("Creating temporary mount point for %s.", RESOLV_CONF)
        guard.replace()
