"""Preserve and restore the chroot's /etc/resolv.conf around a bind mount.

The image's resolv.conf is one of three things when we find it: a symlink
(usually into /run/systemd), a regular file, or missing. We remember which,
swap in an empty placeholder for the host file to be bind-mounted onto, and
put the original back during cleanup.

Restoration problems are returned as RestoreWarning values rather than
raised: cleanup has to go on and unmount the image regardless.
"""

from __future__ import annotations

import enum
import filecmp
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..errors import RestoreWarning
from .env import PATHS

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    UNKNOWN = "unknown"
    CAPTURED = "captured"
    REPLACED = "replaced"
    RESTORED = "restored"


@dataclass(frozen=True)
class SymlinkState:
    target: str


@dataclass(frozen=True)
class RegularFileState:
    backup_path: str


@dataclass(frozen=True)
class AbsentState:
    pass


ResolvConfState = Union[SymlinkState, RegularFileState, AbsentState]


def state_to_record(state: ResolvConfState) -> Dict[str, Any]:
    if isinstance(state, SymlinkState):
        return {"kind": "symlink", "target": state.target}
    if isinstance(state, RegularFileState):
        return {"kind": "file", "backup_path": state.backup_path}
    return {"kind": "absent"}


def state_from_record(record: Dict[str, Any]) -> ResolvConfState:
    kind = record.get("kind")
    if kind == "symlink":
        return SymlinkState(target=str(record["target"]))
    if kind == "file":
        return RegularFileState(backup_path=str(record["backup_path"]))
    if kind == "absent":
        return AbsentState()
    raise ValueError(f"Unknown resolv.conf state kind: {kind!r}")


class ResolvConfGuard:
    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        backup_dir: str = PATHS.backup_dir,
        default_target: str = PATHS.resolv_stub,
    ) -> None:
        self.path = Path(path)
        self.backup_dir = backup_dir
        self.default_target = default_target
        self.phase = Phase.UNKNOWN
        self.state: Optional[ResolvConfState] = None

    @classmethod
    def resume(cls, path: str | os.PathLike[str], state: ResolvConfState, **kwargs: Any) -> "ResolvConfGuard":
        """Rebuild a guard for a placeholder left behind by an earlier run."""

        guard = cls(path, **kwargs)
        guard.state = state
        guard.phase = Phase.REPLACED
        return guard

    def capture(self) -> ResolvConfState:
        if self.phase is not Phase.UNKNOWN:
            raise RuntimeError("resolv.conf state was already captured")

        p = self.path
        state: ResolvConfState
        if p.is_symlink():
            state = SymlinkState(target=os.readlink(p))
            logger.info("Found resolv.conf symlink to '%s'. Storing for restoration.", state.target)
        elif p.is_file():
            fd, backup = tempfile.mkstemp(prefix=f"resolv_conf_backup_{os.getpid()}_", dir=self.backup_dir)
            os.close(fd)
            shutil.copy2(p, backup)
            state = RegularFileState(backup_path=backup)
            logger.info("Found resolv.conf file. Backed up content to %s.", backup)
        else:
            state = AbsentState()
            logger.info("No resolv.conf found in image. Will create symlink on cleanup.")

        self.state = state
        self.phase = Phase.CAPTURED
        return state

    def replace(self) -> None:
        """Swap the original for an empty file to bind-mount onto."""

        if self.phase is not Phase.CAPTURED:
            raise RuntimeError(f"Cannot replace resolv.conf in phase {self.phase.value}")

        p = self.path
        if os.path.lexists(p):
            logger.info("Temporarily removing existing %s for chroot networking.", p)
            p.unlink()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.touch()
        self.phase = Phase.REPLACED

    def restore(self) -> List[RestoreWarning]:
        if self.phase in (Phase.UNKNOWN, Phase.RESTORED) or self.state is None:
            return []

        warnings: List[RestoreWarning] = []
        state = self.state

        if self.phase is Phase.CAPTURED and self._untouched(state):
            if isinstance(state, RegularFileState):
                self._drop_backup(state, warnings)
        else:
            self._put_back(state, warnings)

        for w in warnings:
            logger.warning("WARNING: %s", w)
        if not warnings:
            self.phase = Phase.RESTORED
        return warnings

    def _untouched(self, state: ResolvConfState) -> bool:
        """True when the file still looks the way capture() found it.

        replace() can be cut short between removing the original and
        writing the placeholder, so a CAPTURED phase alone proves nothing.
        """

        p = self.path
        if isinstance(state, SymlinkState):
            return p.is_symlink() and os.readlink(p) == state.target
        if isinstance(state, RegularFileState):
            if p.is_symlink() or not p.is_file():
                return False
            try:
                return filecmp.cmp(p, state.backup_path, shallow=False)
            except OSError:
                # no backup to compare against or to restore from
                return True
        return not os.path.lexists(p)

    def _put_back(self, state: ResolvConfState, warnings: List[RestoreWarning]) -> None:
        try:
            if os.path.lexists(self.path):
                self.path.unlink()
        except OSError as e:
            # probably still bind-mounted; a write would reach the host file
            warnings.append(RestoreWarning(f"Failed to remove resolv.conf placeholder {self.path}: {e}"))
            return

        if isinstance(state, SymlinkState):
            self._symlink(state.target, warnings, what="resolv.conf symlink")
        elif isinstance(state, RegularFileState):
            try:
                shutil.copy2(state.backup_path, self.path)
            except OSError as e:
                warnings.append(RestoreWarning(f"Failed to restore resolv.conf file: {e}"))
            else:
                logger.info("Successfully restored resolv.conf file.")
                self._drop_backup(state, warnings)
        else:
            self._symlink(self.default_target, warnings, what="default resolv.conf symlink")

    def _symlink(self, target: str, warnings: List[RestoreWarning], *, what: str) -> None:
        try:
            os.symlink(target, self.path)
        except OSError as e:
            warnings.append(RestoreWarning(f"Failed to create {what}: {e}"))
        else:
            logger.info("Restored %s to '%s'.", what, target)

    def _drop_backup(self, state: RegularFileState, warnings: List[RestoreWarning]) -> None:
        try:
            os.unlink(state.backup_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            warnings.append(RestoreWarning(f"Failed to delete resolv.conf backup {state.backup_path}: {e}"))
