from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class InjectInterpreterStep:
    step_id = "90_inject_interpreter"

    def run(self, session: "Session") -> None:
        session.interpreter = session.mounts.inject_interpreter(session.config.qemu_bin)
        logger.info("Copied %s into the image", session.interpreter)
