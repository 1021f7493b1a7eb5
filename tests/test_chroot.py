"""Tests for root/EFI/bind mount orchestration."""

import pytest

from sbc_image_manager.errors import MountError, TeardownWarning, ValidationFailure
from sbc_image_manager.lib.chroot import MountOrchestrator, chroot_argv


@pytest.fixture
def mounts(rootfs, runner):
    return MountOrchestrator(str(rootfs), runner, host_resolv="/etc/resolv.conf")


class TestBindMounts:
    def test_plan_order(self, mounts, rootfs):
        assert mounts.bind_plan() == [
            ("/dev", str(rootfs / "dev")),
            ("/dev/pts", str(rootfs / "dev/pts")),
            ("/proc", str(rootfs / "proc")),
            ("/sys", str(rootfs / "sys")),
            ("/run", str(rootfs / "run")),
            ("/etc/resolv.conf", str(rootfs / "etc/resolv.conf")),
        ]

    def test_teardown_reverses_setup(self, mounts, runner):
        mounts.bind_all()
        mounted = [c[-1] for c in runner.commands("mount")]

        assert mounts.unmount_binds() == []

        unmounted = [c[-1] for c in runner.commands("umount")]
        assert unmounted == list(reversed(mounted))
        assert runner.mounted == set()
        assert mounts.bind_mounts() == []

    def test_teardown_follows_recorded_order(self, mounts, runner, rootfs):
        """A record from an earlier run decides the order, not the current plan."""
        mounts.load_records(
            [
                {"source": "/run", "target": str(rootfs / "run"), "kind": "bind"},
                {"source": "/dev", "target": str(rootfs / "dev"), "kind": "bind"},
            ]
        )
        runner.mounted.update({str(rootfs / "run"), str(rootfs / "dev"), str(rootfs / "proc")})

        assert mounts.unmount_binds() == []

        assert [c[-1] for c in runner.commands("umount")] == [
            str(rootfs / "dev"),
            str(rootfs / "run"),
            str(rootfs / "proc"),
        ]
        assert mounts.to_records() == []

    def test_records_round_trip(self, mounts, rootfs):
        mounts.mount_root("/dev/loop7p2")
        mounts.bind_all()

        again = MountOrchestrator(str(rootfs), mounts.runner)
        again.load_records(mounts.to_records())

        assert again.bind_mounts() == mounts.bind_mounts()
        assert again.to_records()[0] == {"source": "/dev/loop7p2", "target": str(rootfs), "kind": "root"}

    def test_nothing_mounted(self, mounts, runner):
        assert mounts.unmount_binds() == []
        assert mounts.unmount_root() == []
        assert mounts.unmount_efi() == []
        assert runner.commands("umount") == []

    def test_failed_unmount_is_reported_and_others_continue(self, mounts, runner, rootfs):
        mounts.bind_all()
        runner.fail(["umount", "-lf", str(rootfs / "proc")], stderr="target is busy")

        warnings = mounts.unmount_binds()

        assert len(warnings) == 1
        assert isinstance(warnings[0], TeardownWarning)
        assert "target is busy" in str(warnings[0])
        assert runner.mounted == {str(rootfs / "proc")}

    def test_bind_failure(self, mounts, runner):
        runner.fail(["mount", "--bind", "/sys"])

        with pytest.raises(MountError):
            mounts.bind_all()
        assert [e.source for e in mounts.bind_mounts()] == ["/dev", "/dev/pts", "/proc"]


class TestRootAndEfi:
    def test_mount_root_and_efi(self, mounts, runner, rootfs):
        mounts.mount_root("/dev/loop7p2")
        mounts.mount_efi("/dev/loop7p1")

        assert runner.calls == [
            ["mount", "/dev/loop7p2", str(rootfs)],
            ["mount", "/dev/loop7p1", str(rootfs / "boot/efi")],
        ]
        assert (rootfs / "boot/efi").is_dir()
        assert mounts.mounted_targets() == [str(rootfs), str(rootfs / "boot/efi")]

        assert mounts.unmount_efi() == []
        assert mounts.unmount_root() == []
        assert runner.mounted == set()

    def test_missing_etc_after_mount(self, tmp_path, runner):
        empty = MountOrchestrator(str(tmp_path / "empty"), runner)
        empty.mount_root("/dev/loop7p2")

        with pytest.raises(ValidationFailure, match="/etc directory not found"):
            empty.check_root_marker()

    def test_inject_interpreter(self, mounts, runner, rootfs):
        dest = mounts.inject_interpreter("/usr/bin/qemu-aarch64-static")

        assert runner.calls == [["cp", "/usr/bin/qemu-aarch64-static", f"{rootfs / 'usr/bin'}/"]]
        assert dest == str(rootfs / "usr/bin/qemu-aarch64-static")


def test_chroot_argv():
    assert chroot_argv("/mnt/img", "/usr/bin/qemu-aarch64-static", "/bin/bash") == [
        "chroot",
        "/mnt/img",
        "/usr/bin/qemu-aarch64-static",
        "/bin/bash",
    ]
