from __future__ import annotations

import logging
import os
import sys
from typing import List, Optional, TextIO

from .cleanup import CleanupCoordinator, TeardownReport
from .config import SessionConfig
from .lib.chroot import MountOrchestrator
from .lib.command import CommandRunner
from .lib.image import format_size
from .lib.loop import find_attached
from .session import Session
from .state_store import load_record

logger = logging.getLogger(__name__)


def collect_status(config: SessionConfig, runner: CommandRunner) -> List[str]:
    lines: List[str] = ["=== SBC Image Manager Status ===", "", "Mount Points:"]

    mounts = MountOrchestrator(config.mount_dir, runner, host_resolv=config.host_resolv)
    mounted = mounts.mounted_targets()
    if str(mounts.root) in mounted:
        lines.extend(f"  [MOUNTED] {t}" for t in mounted)
    else:
        lines.append(f"  [NOT MOUNTED] {config.mount_dir}")

    lines.extend(["", "Loop Devices:"])
    loops = find_attached(config.image, runner)
    if loops:
        lines.extend(f"  [ACTIVE] {dev}" for dev in loops)
    else:
        lines.append("  [NONE] No active loop devices for this image")

    lines.extend(["", "Image Files:"])
    for path in (config.image, f"{config.image}.backup"):
        if os.path.isfile(path):
            lines.append(f"  [EXISTS] {path} ({format_size(os.path.getsize(path))})")
        else:
            lines.append(f"  [MISSING] {path}")

    record = load_record(config.state_path)
    lines.extend(["", "Session Record:"])
    if record:
        lines.append(f"  [PRESENT] {config.state_path}")
        lines.append(f"    pid={record.get('pid')} loop={record.get('loop')} step={record.get('current_step')}")
        resolv = record.get("resolv_conf") or {}
        if resolv:
            lines.append(f"    resolv.conf={resolv.get('kind')} ({resolv.get('phase')})")
    else:
        lines.append("  [NONE] no unfinished session")
    return lines


def show_status(config: SessionConfig, runner: CommandRunner, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    for line in collect_status(config, runner):
        print(line, file=out)
    return 0


def cleanup_only(config: SessionConfig, runner: CommandRunner) -> TeardownReport:
    """Release whatever an earlier run left behind.

    With a session record the full teardown runs, resolv.conf included.
    Without one we can still unmount the known targets and detach loop
    devices bound to the image, but resolv.conf cannot be
    put back.
    """

    logger.info("Cleanup-only mode: cleaning up existing resources...")
    record = load_record(config.state_path)
    if record:
        logger.info("Found session record from pid %s", record.get("pid"))
        session = Session.from_record(config, record, runner)
    else:
        logger.info("No session record at %s", config.state_path)
        session = Session(config, runner)
        session.attach_started = True

    report = CleanupCoordinator(session, install_signals=False).safe_teardown()

    if not record and os.path.lexists(session.mounts.target("/etc/resolv.conf")):
        logger.warning("resolv.conf inside the image may still be a placeholder; check it before use")
    return report
