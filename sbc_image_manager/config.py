from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import InvalidArguments
from .lib.env import DEFAULT_SIZE_GB, PATHS


@dataclass(frozen=True)
class ConfigFile:
    """Values read from a YAML config file, with defaults for anything unset."""

    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def image(self) -> str:
        return str(self._section("image").get("path") or PATHS.image)

    @property
    def size_gb(self) -> int:
        return int(self._section("image").get("size_gb") or DEFAULT_SIZE_GB)

    @property
    def backup(self) -> bool:
        return bool(self._section("image").get("backup", False))

    @property
    def mount_dir(self) -> str:
        return str(self._section("paths").get("mount_dir") or PATHS.mount_dir)

    @property
    def state_path(self) -> str:
        return str(self._section("paths").get("state") or PATHS.state_default)

    @property
    def log_path(self) -> str:
        return str(self._section("paths").get("log") or PATHS.log_default)

    @property
    def backup_dir(self) -> str:
        return str(self._section("paths").get("backup_dir") or PATHS.backup_dir)

    @property
    def qemu_bin(self) -> str:
        return str(self._section("chroot").get("qemu_bin") or PATHS.qemu_bin)

    @property
    def shell(self) -> str:
        return str(self._section("chroot").get("shell") or PATHS.shell)

    @property
    def host_resolv(self) -> str:
        return str(self._section("chroot").get("host_resolv") or PATHS.host_resolv)

    @property
    def skip_chroot(self) -> bool:
        return bool(self._section("chroot").get("skip", False))


def load_config_file(path: str) -> ConfigFile:
    p = Path(path)
    if not p.exists():
        raise InvalidArguments(f"Config file not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise InvalidArguments("config file must be YAML")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise InvalidArguments(f"Cannot parse {path}: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidArguments(f"{path} must contain a mapping/object")

    return ConfigFile(raw=raw)


@dataclass(frozen=True)
class SessionConfig:
    image: str = PATHS.image
    mount_dir: str = PATHS.mount_dir
    qemu_bin: str = PATHS.qemu_bin
    shell: str = PATHS.shell
    size_gb: int = DEFAULT_SIZE_GB
    backup: bool = False
    skip_chroot: bool = False
    dry_run: bool = False
    verbose: bool = False
    host_resolv: str = PATHS.host_resolv
    backup_dir: str = PATHS.backup_dir
    state_path: str = PATHS.state_default
    log_path: str = PATHS.log_default

    def __post_init__(self) -> None:
        if self.size_gb < 1:
            raise InvalidArguments(f"size must be at least 1 GB, got {self.size_gb}")

    @property
    def target_bytes(self) -> int:
        return self.size_gb * 1024 * 1024 * 1024

    @classmethod
    def from_sources(cls, file_cfg: Optional[ConfigFile] = None, **overrides: Any) -> "SessionConfig":
        """File values first, then any override that is not None."""

        cfg = file_cfg or ConfigFile()
        base = cls(
            image=cfg.image,
            mount_dir=cfg.mount_dir,
            qemu_bin=cfg.qemu_bin,
            shell=cfg.shell,
            size_gb=cfg.size_gb,
            backup=cfg.backup,
            skip_chroot=cfg.skip_chroot,
            host_resolv=cfg.host_resolv,
            backup_dir=cfg.backup_dir,
            state_path=cfg.state_path,
            log_path=cfg.log_path,
        )
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise InvalidArguments(f"Unknown settings: {', '.join(sorted(unknown))}")
        return replace(base, **{k: v for k, v in overrides.items() if v is not None})

    def summary(self) -> Mapping[str, Any]:
        return {
            "Target size": f"{self.size_gb}GB",
            "Mount directory": self.mount_dir,
            "QEMU binary": self.qemu_bin,
            "Image file": self.image,
            "Dry-run mode": "enabled" if self.dry_run else "disabled",
            "Backup mode": "enabled" if self.backup else "disabled",
        }
