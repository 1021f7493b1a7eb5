"""Tests for YAML config loading and option precedence."""

import pytest

from sbc_image_manager.config import ConfigFile, SessionConfig, load_config_file
from sbc_image_manager.errors import InvalidArguments
from sbc_image_manager.lib.env import PATHS


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "sbc.yaml"
    path.write_text(
        "image:\n"
        "  path: /srv/images/board.img\n"
        "  size_gb: 8\n"
        "  backup: true\n"
        "paths:\n"
        "  mount_dir: /mnt/board\n"
        "  state: /run/sbc/session.yaml\n"
        "chroot:\n"
        "  qemu_bin: /usr/bin/qemu-arm-static\n"
        "  skip: true\n",
        encoding="utf-8",
    )
    return path


class TestLoadConfigFile:
    def test_values(self, config_file):
        cfg = load_config_file(str(config_file))

        assert cfg.image == "/srv/images/board.img"
        assert cfg.size_gb == 8
        assert cfg.backup is True
        assert cfg.mount_dir == "/mnt/board"
        assert cfg.state_path == "/run/sbc/session.yaml"
        assert cfg.qemu_bin == "/usr/bin/qemu-arm-static"
        assert cfg.skip_chroot is True
        assert cfg.shell == PATHS.shell
        assert cfg.log_path == PATHS.log_default

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidArguments, match="not found"):
            load_config_file(str(tmp_path / "nope.yaml"))

    def test_must_be_yaml(self, tmp_path):
        path = tmp_path / "sbc.json"
        path.write_text("{}")

        with pytest.raises(InvalidArguments):
            load_config_file(str(path))

    def test_malformed(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("image: [unclosed\n")

        with pytest.raises(InvalidArguments, match="Cannot parse"):
            load_config_file(str(path))

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(InvalidArguments):
            load_config_file(str(path))


class TestSessionConfig:
    def test_defaults(self):
        cfg = SessionConfig.from_sources()

        assert cfg.image == PATHS.image
        assert cfg.mount_dir == "/mnt/libre_image"
        assert cfg.qemu_bin == "/usr/bin/qemu-aarch64-static"
        assert cfg.size_gb == 5
        assert cfg.target_bytes == 5 * 1024**3
        assert not cfg.dry_run

    def test_overrides_beat_file(self, config_file):
        cfg = SessionConfig.from_sources(load_config_file(str(config_file)), size_gb=12, mount_dir=None)

        assert cfg.size_gb == 12
        assert cfg.mount_dir == "/mnt/board"
        assert cfg.image == "/srv/images/board.img"

    def test_unknown_override(self):
        with pytest.raises(InvalidArguments, match="colour"):
            SessionConfig.from_sources(ConfigFile(), colour="blue")

    def test_size_must_be_positive(self):
        with pytest.raises(InvalidArguments):
            SessionConfig.from_sources(size_gb=0)

    def test_summary(self):
        summary = SessionConfig(dry_run=True).summary()

        assert summary["Target size"] == "5GB"
        assert summary["Dry-run mode"] == "enabled"
        assert summary["Backup mode"] == "disabled"
