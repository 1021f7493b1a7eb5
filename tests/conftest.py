"""
Pytest configuration and shared fixtures for sbc-image-manager tests.

Nothing here touches real block devices: FakeRunner stands in for the
CommandRunner and keeps just enough state (a mount table and attached loop
devices) for setup and teardown to behave as they would on a host.
"""

import os
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

import pytest

from sbc_image_manager.config import SessionConfig
from sbc_image_manager.errors import CommandError
from sbc_image_manager.lib.command import CmdResult
from sbc_image_manager.lib.env import MIN_IMAGE_SIZE

Scripted = Union[str, Tuple[int, str, str]]


class FakeRunner:
    """Records every command and simulates mount/losetup state."""

    def __init__(self, *, dry_run: bool = False, next_loop: str = "/dev/loop7") -> None:
        self.dry_run = dry_run
        self.next_loop = next_loop
        self.calls: List[List[str]] = []
        self.interactive_calls: List[List[str]] = []
        self.mounted: Set[str] = set()
        self.attached: Dict[str, str] = {}
        self.outputs: Dict[Union[Tuple[str, ...], str], Scripted] = {}
        self.failures: List[Tuple[Tuple[str, ...], int, str]] = []
        self.on_interactive: Optional[Callable[[], None]] = None
        self.interactive_rc = 0

    # --- scripting ---

    def script(self, key: Union[Sequence[str], str], result: Scripted) -> None:
        self.outputs[key if isinstance(key, str) else tuple(key)] = result

    def fail(self, prefix: Sequence[str], returncode: int = 1, stderr: str = "simulated failure") -> None:
        self.failures.append((tuple(prefix), returncode, stderr))

    def commands(self, name: str) -> List[List[str]]:
        return [c for c in self.calls if c[0] == name]

    # --- CommandRunner interface ---

    def run(self, argv: Sequence[str], *, check: bool = True, input_text: Optional[str] = None) -> CmdResult:
        argv = [str(a) for a in argv]
        self.calls.append(argv)

        rc, out, err = self._result(argv)
        if check and rc != 0:
            raise CommandError(argv, rc, err)
        return CmdResult(argv=argv, returncode=rc, stdout=out, stderr=err)

    def ok(self, argv: Sequence[str]) -> bool:
        return self.run(argv, check=False).returncode == 0

    def interactive(self, argv: Sequence[str]) -> int:
        self.interactive_calls.append([str(a) for a in argv])
        if self.on_interactive is not None:
            self.on_interactive()
        return self.interactive_rc

    # --- simulation ---

    def _result(self, argv: List[str]) -> Tuple[int, str, str]:
        for prefix, rc, err in self.failures:
            if tuple(argv[: len(prefix)]) == prefix:
                return rc, "", err

        scripted = self.outputs.get(tuple(argv), self.outputs.get(argv[0]))
        if scripted is not None:
            if isinstance(scripted, str):
                return 0, scripted, ""
            return scripted

        name = argv[0]
        if name == "mount":
            self.mounted.add(argv[-1])
        elif name == "umount":
            self.mounted.discard(argv[-1])
        elif name == "mountpoint":
            return (0 if argv[-1] in self.mounted else 1), "", ""
        elif name == "losetup":
            return self._losetup(argv[1:])
        return 0, "", ""

    def _losetup(self, args: List[str]) -> Tuple[int, str, str]:
        if args[:2] == ["--show", "-Pf"]:
            dev = self.next_loop
            self.attached[dev] = args[2]
            return 0, dev + "\n", ""
        if args == ["-a"]:
            lines = [f"{dev}: [2049]:131 ({image})" for dev, image in sorted(self.attached.items())]
            return 0, "\n".join(lines) + ("\n" if lines else ""), ""
        if args[:1] == ["-d"]:
            if self.attached.pop(args[1], None) is None:
                return 1, "", f"losetup: {args[1]}: detach failed: No such device or address"
            return 0, "", ""
        if len(args) == 1:
            if args[0] not in self.attached:
                return 1, "", f"losetup: {args[0]}: No such device or address"
            return 0, f"{args[0]}: [2049]:131 ({self.attached[args[0]]})\n", ""
        return 0, "", ""


MBR_PARTED = (
    "BYT;\n"
    "/dev/loop7:2097152s:loopback:512:512:msdos::;\n"
    "1:2048s:526335s:524288s:fat32::boot, lba;\n"
    "2:526336s:819199s:292864s:ext4::;\n"
)

MBR_LSBLK = (
    "/dev/loop7 1073741824 loop \n"
    "/dev/loop7p1 268435456 part vfat\n"
    "/dev/loop7p2 149946368 part ext4\n"
)


def script_partitioned_image(runner: FakeRunner, *, fs_type: str = "ext4") -> None:
    """Two-partition MBR image: FAT boot partition then the root filesystem."""

    dev = runner.next_loop
    runner.script(["parted", "-ms", dev, "unit", "s", "print"], MBR_PARTED.replace("ext4", fs_type))
    runner.script(["lsblk", "-lnpb", "-o", "NAME,SIZE,TYPE,FSTYPE", dev], MBR_LSBLK.replace("ext4", fs_type))
    runner.script(["blkid", "-o", "value", "-s", "TYPE", f"{dev}p2"], f"{fs_type}\n")


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def rootfs(tmp_path):
    """Directory standing in for the mounted image root."""

    root = tmp_path / "mnt"
    for d in ("etc", "dev/pts", "proc", "sys", "run", "usr/bin"):
        (root / d).mkdir(parents=True)
    os.symlink("../run/systemd/resolve/stub-resolv.conf", root / "etc" / "resolv.conf")
    return root


@pytest.fixture
def image(tmp_path):
    """Sparse image file of exactly the minimum accepted size."""

    path = tmp_path / "sbc.img"
    with open(path, "wb") as f:
        f.truncate(MIN_IMAGE_SIZE)
    return path


@pytest.fixture
def config(tmp_path, image, rootfs) -> SessionConfig:
    return SessionConfig(
        image=str(image),
        mount_dir=str(rootfs),
        size_gb=1,
        backup_dir=str(tmp_path),
        state_path=str(tmp_path / "state" / "session.json"),
        log_path=str(tmp_path / "sbc.log"),
    )
