from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..lib.image import backup_image, validate_image

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


class ValidateImageStep:
    step_id = "10_validate_image"

    def run(self, session: "Session") -> None:
        validate_image(session.image_path, session.runner)

        if session.config.backup:
            backup_image(session.image_path, dry_run=session.dry_run)
