from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..lib.partitions import grow_partition

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class GrowImageStep:
    step_id = "20_grow_image"

    def run(self, session: "Session") -> None:
        logger.info("Checking image size (target %dGB)...", session.config.size_gb)
        session.attach_started = True
        new_end = grow_partition(session.image_path, session.config.target_bytes, session.runner)
        if new_end is not None:
            logger.info("Root partition now ends at sector %d", new_end)
