from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Protocol, Sequence

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single setup step; acquires resources and records them on the session."""

    step_id: str

    def run(self, session: "Session") -> None:
        ...


@dataclass(frozen=True)
class PipelineResult:
    ran_steps: List[str]


def run_pipeline(*, session: "Session", steps: Sequence[Step]) -> PipelineResult:
    """Run steps in order, fail-fast.

    The session record is saved after every step so a crashed run can be
    cleaned up later. Rolling back is the caller's job (CleanupCoordinator).
    """

    ran: List[str] = []

    for step in steps:
        session.current_step = step.step_id
        logger.info("Running step %s", step.step_id)
        try:
            step.run(session)
        except Exception:
            logger.error("Step %s failed", step.step_id)
            try:
                session.save_record()
            except OSError as e:
                logger.error("Could not save session record: %s", e)
            raise
        session.completed_steps.append(step.step_id)
        ran.append(step.step_id)
        session.save_record()

    session.current_step = None
    return PipelineResult(ran_steps=ran)
