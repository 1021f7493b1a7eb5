from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    image: str = "debian-12-base-arm64+aml-s905x-cc.img"
    mount_dir: str = "/mnt/libre_image"
    qemu_bin: str = "/usr/bin/qemu-aarch64-static"
    shell: str = "/bin/bash"
    host_resolv: str = "/etc/resolv.conf"
    resolv_stub: str = "/run/systemd/resolve/stub-resolv.conf"
    backup_dir: str = "/tmp"
    state_default: str = "/var/lib/sbc-image-manager/session.json"
    log_default: str = "/var/log/sbc-image-manager.log"


PATHS = Paths()

DEFAULT_SIZE_GB = 5
MIN_IMAGE_SIZE = 100 * 1024 * 1024
