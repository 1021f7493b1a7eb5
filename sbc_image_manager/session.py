from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from .cleanup import CleanupCoordinator, TeardownReport
from .config import SessionConfig
from .lib.chroot import RESOLV_CONF, MountOrchestrator, chroot_argv
from .lib.command import CommandRunner
from .lib.loop import LoopDevice
from .lib.resize import FsType
from .lib.resolv import Phase, ResolvConfGuard, state_from_record, state_to_record
from .pipeline import PipelineResult, run_pipeline
from .state_store import clear_record, save_record
from .steps import (
    AttachLoopStep,
    BindMountsStep,
    GrowImageStep,
    InjectInterpreterStep,
    MountEfiStep,
    MountRootStep,
    PrepareResolvConfStep,
    ResizeFilesystemStep,
    ValidateImageStep,
)

logger = logging.getLogger(__name__)


def build_steps():
    return [
        ValidateImageStep(),
        GrowImageStep(),
        AttachLoopStep(),
        ResizeFilesystemStep(),
        MountRootStep(),
        MountEfiStep(),
        PrepareResolvConfStep(),
        BindMountsStep(),
        InjectInterpreterStep(),
    ]


class Session:
    """Everything one run has acquired.

    Setup steps fill in the optional fields as resources come up; the
    CleanupCoordinator releases them in reverse and clears the fields.
    """

    def __init__(self, config: SessionConfig, runner: Optional[CommandRunner] = None) -> None:
        self.config = config
        self.runner = runner if runner is not None else CommandRunner(dry_run=config.dry_run)
        self.mounts = MountOrchestrator(config.mount_dir, self.runner, host_resolv=config.host_resolv)

        self.loop: Optional[LoopDevice] = None
        # once set, teardown also detaches any loop device still bound to the image
        self.attach_started = False
        self.root_partition: Optional[str] = None
        self.efi_partition: Optional[str] = None
        self.root_fs_type: Optional[FsType] = None
        self.resolv: Optional[ResolvConfGuard] = None
        self.interpreter: Optional[str] = None

        self.current_step: Optional[str] = None
        self.completed_steps: List[str] = []

    @property
    def image_path(self) -> str:
        return self.config.image

    @property
    def mount_root(self) -> str:
        return self.config.mount_dir

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    def setup(self) -> PipelineResult:
        return run_pipeline(session=self, steps=build_steps())

    def enter_chroot(self) -> int:
        logger.info("Entering chroot at %s...", self.mount_root)
        rc = self.runner.interactive(chroot_argv(self.mount_root, self.config.qemu_bin, self.config.shell))
        if rc != 0:
            logger.warning("Chroot shell exited with status %d", rc)
        return rc

    def resolv_guard(self) -> ResolvConfGuard:
        guard = ResolvConfGuard(self.mounts.target(RESOLV_CONF), backup_dir=self.config.backup_dir)
        self.resolv = guard
        return guard

    # --- session record ---

    def to_record(self) -> Dict[str, Any]:
        resolv: Optional[Dict[str, Any]] = None
        if self.resolv is not None and self.resolv.state is not None:
            resolv = {"phase": self.resolv.phase.value, **state_to_record(self.resolv.state)}
        return {
            "pid": os.getpid(),
            "image": self.image_path,
            "mount_root": self.mount_root,
            "loop": self.loop.path if self.loop else None,
            "root_partition": self.root_partition,
            "efi_partition": self.efi_partition,
            "mounts": self.mounts.to_records(),
            "resolv_conf": resolv,
            "current_step": self.current_step,
            "completed_steps": list(self.completed_steps),
        }

    def save_record(self) -> None:
        if self.dry_run:
            return
        save_record(self.config.state_path, self.to_record())

    def clear_record(self) -> None:
        if self.dry_run:
            return
        clear_record(self.config.state_path)

    @classmethod
    def from_record(
        cls,
        config: SessionConfig,
        record: Dict[str, Any],
        runner: Optional[CommandRunner] = None,
    ) -> "Session":
        """Rebuild a session left behind by a run that never cleaned up."""

        session = cls(config, runner)
        session.attach_started = True
        if record.get("loop"):
            session.loop = LoopDevice(path=str(record["loop"]), image=str(record.get("image") or config.image))
        session.root_partition = record.get("root_partition")
        session.efi_partition = record.get("efi_partition")
        session.mounts.load_records(record.get("mounts") or [])
        session.completed_steps = list(record.get("completed_steps") or [])

        resolv = record.get("resolv_conf")
        if resolv:
            state = state_from_record(resolv)
            guard = ResolvConfGuard.resume(
                session.mounts.target(RESOLV_CONF), state, backup_dir=config.backup_dir
            )
            guard.phase = Phase(resolv.get("phase", Phase.REPLACED.value))
            session.resolv = guard
        return session

    def clear(self) -> None:
        self.loop = None
        self.attach_started = False
        self.root_partition = None
        self.efi_partition = None
        self.root_fs_type = None
        self.resolv = None
        self.interpreter = None
        self.current_step = None


def run_session(config: SessionConfig, runner: Optional[CommandRunner] = None) -> TeardownReport:
    """Set up the image, run the chroot shell, and always tear down.

    Returns the TeardownReport of the run.
    """

    session = Session(config, runner)
    with CleanupCoordinator(session) as guard:
        session.setup()
        if config.skip_chroot:
            logger.info("Skipping chroot (setup only mode); image was prepared at %s", session.mount_root)
        else:
            with guard.interactive_session():
                session.enter_chroot()

    report = guard.report
    if report.clean:
        logger.info("Done. Image is unmounted and clean.")
    else:
        logger.warning("Done, with %d cleanup warning(s); see above.", len(report.warnings))
    return report
