from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from ..errors import CommandError, MountError, TeardownWarning, ValidationFailure
from .command import CommandRunner, is_mountpoint
from .env import PATHS

logger = logging.getLogger(__name__)

# Host paths bind-mounted into the image, in setup order.
BIND_MOUNTS = ("/dev", "/dev/pts", "/proc", "/sys", "/run")
RESOLV_CONF = "/etc/resolv.conf"
EFI_DIR = "boot/efi"
ROOT_MARKER = "etc"


@dataclass(frozen=True)
class MountEntry:
    source: str
    target: str
    kind: str  # root|efi|bind


class MountOrchestrator:
    """Mounts an image root plus its chroot binds, and takes them down again.

    Every mount performed is recorded in order so teardown can walk the
    same list backwards.
    """

    def __init__(self, mount_root: str, runner: CommandRunner, *, host_resolv: str = PATHS.host_resolv) -> None:
        self.root = Path(mount_root)
        self.runner = runner
        self.host_resolv = host_resolv
        self._entries: List[MountEntry] = []

    def target(self, rel: str) -> str:
        return str(self.root / rel.lstrip("/"))

    def bind_plan(self) -> List[Tuple[str, str]]:
        plan = [(src, self.target(src)) for src in BIND_MOUNTS]
        plan.append((self.host_resolv, self.target(RESOLV_CONF)))
        return plan

    def bind_mounts(self) -> List[MountEntry]:
        return [e for e in self._entries if e.kind == "bind"]

    def to_records(self) -> List[Dict[str, str]]:
        return [{"source": e.source, "target": e.target, "kind": e.kind} for e in self._entries]

    def load_records(self, rows: Sequence[Dict[str, str]]) -> None:
        self._entries = [MountEntry(source=r["source"], target=r["target"], kind=r["kind"]) for r in rows]

    def _mount(self, opts: Sequence[str], source: str, target: str, kind: str) -> MountEntry:
        try:
            self.runner.run(["mount", *opts, source, target])
        except CommandError as e:
            raise MountError(f"Failed to mount {source} on {target}: {e.stderr.strip() or e}") from e
        entry = MountEntry(source=source, target=target, kind=kind)
        self._entries.append(entry)
        return entry

    # --- setup ---

    def mount_root(self, device: str) -> MountEntry:
        if not self.runner.dry_run:
            self.root.mkdir(parents=True, exist_ok=True)
        logger.info("Using root partition: %s", device)
        return self._mount([], device, str(self.root), "root")

    def check_root_marker(self) -> None:
        if self.runner.dry_run:
            return
        if not (self.root / ROOT_MARKER).is_dir():
            raise ValidationFailure(
                f"/{ROOT_MARKER} directory not found after mounting root filesystem at {self.root}; "
                "likely an empty or improperly configured image"
            )

    def mount_efi(self, device: str) -> MountEntry:
        efi = self.root / EFI_DIR
        if not self.runner.dry_run:
            efi.mkdir(parents=True, exist_ok=True)
        logger.info("Mounting EFI partition %s", device)
        return self._mount([], device, str(efi), "efi")

    def bind_all(self) -> List[MountEntry]:
        return [self._mount(["--bind"], src, dst, "bind") for src, dst in self.bind_plan()]

    def inject_interpreter(self, binary: str) -> str:
        """Copy the foreign-architecture interpreter into the image's /usr/bin."""

        dest_dir = self.root / "usr/bin"
        self.runner.run(["cp", binary, f"{dest_dir}/"])
        return str(dest_dir / Path(binary).name)

    # --- teardown; each step reports failures instead of raising ---

    def _umount(self, target: str) -> List[TeardownWarning]:
        try:
            self.runner.run(["umount", "-lf", target])
        except CommandError as e:
            w = TeardownWarning(f"Failed to unmount {target}: {e.stderr.strip() or e}")
            logger.warning("%s", w)
            return [w]
        self._entries = [e for e in self._entries if e.target != target]
        return []

    def unmount_efi(self) -> List[TeardownWarning]:
        efi = self.root / EFI_DIR
        if efi.is_dir() and is_mountpoint(efi, self.runner):
            return self._umount(str(efi))
        return []

    def unmount_binds(self) -> List[TeardownWarning]:
        """Unmount recorded binds newest first, then any planned target
        still mounted that never made it into the record."""

        recorded = [e.target for e in reversed(self.bind_mounts())]
        leftover = [dst for _src, dst in reversed(self.bind_plan()) if dst not in recorded]

        warnings: List[TeardownWarning] = []
        for dst in recorded + leftover:
            if is_mountpoint(dst, self.runner):
                warnings.extend(self._umount(dst))
        return warnings

    def unmount_root(self) -> List[TeardownWarning]:
        if is_mountpoint(self.root, self.runner):
            return self._umount(str(self.root))
        return []

    def mounted_targets(self) -> List[str]:
        """Known targets under the root that are currently mount points."""

        found = []
        if is_mountpoint(self.root, self.runner):
            found.append(str(self.root))
        for _src, dst in self.bind_plan():
            if is_mountpoint(dst, self.runner):
                found.append(dst)
        efi = self.root / EFI_DIR
        if is_mountpoint(efi, self.runner):
            found.append(str(efi))
        return found


def chroot_argv(target_root: str, interpreter: str, shell: str) -> List[str]:
    """Interactive shell inside target_root, run through the copied interpreter."""

    return ["chroot", target_root, f"/usr/bin/{Path(interpreter).name}", shell]
