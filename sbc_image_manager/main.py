from __future__ import annotations

import argparse
import logging
from typing import Optional

from .config import SessionConfig, load_config_file
from .errors import EXIT_GENERAL_ERROR, EXIT_SUCCESS, DependencyMissing, ImageManagerError, InvalidArguments
from .lib.command import CommandRunner
from .lib.host import check_dependencies, check_interpreter, require_root, validate_path
from .logging_utils import configure_logging
from .session import run_session
from .status import cleanup_only, show_status

logger = logging.getLogger(__name__)


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise InvalidArguments(f"{self.prog}: {message}")


def build_parser() -> argparse.ArgumentParser:
    p = _Parser(
        prog="sbc-image-manager",
        description="Grow, mount and chroot into an ARM SBC disk image, then clean up.",
    )
    p.add_argument("--config", default=None, help="YAML config file")
    p.add_argument("-i", "--image", default=None, help="Image file to operate on")
    p.add_argument("-m", "--mount", dest="mount_dir", default=None, help="Mount directory")
    p.add_argument("-q", "--qemu-bin", dest="qemu_bin", default=None, help="QEMU user-mode binary")
    p.add_argument("--shell", default=None, help="Shell to run inside the chroot")
    p.add_argument("-s", "--size", dest="size_gb", type=int, default=None, help="Target image size in GB")
    p.add_argument("-b", "--backup", action="store_true", default=None, help="Copy the image before modifying it")
    p.add_argument("--skip-chroot", action="store_true", default=None, help="Prepare the image without a shell")
    p.add_argument("-n", "--dry-run", action="store_true", help="Log commands without running them")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("--log", dest="log_path", default=None, help="Path to log file")
    p.add_argument("--state", dest="state_path", default=None, help="Path to session record (json|yaml)")

    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--status", action="store_true", help="Show mounts, loop devices and session record")
    mode.add_argument("--cleanup-only", action="store_true", help="Release resources left by an earlier run")
    return p


def _preflight(config: SessionConfig) -> None:
    try:
        check_dependencies()
        check_interpreter(config.qemu_bin)
    except DependencyMissing as e:
        if not config.dry_run:
            raise
        logger.warning("%s (ignored in dry-run)", e)


def run(args: argparse.Namespace) -> int:
    file_cfg = load_config_file(args.config) if args.config else None
    config = SessionConfig.from_sources(
        file_cfg,
        image=args.image,
        mount_dir=args.mount_dir,
        qemu_bin=args.qemu_bin,
        shell=args.shell,
        size_gb=args.size_gb,
        backup=args.backup,
        skip_chroot=args.skip_chroot,
        dry_run=args.dry_run,
        verbose=args.verbose,
        log_path=args.log_path,
        state_path=args.state_path,
    )

    for value, name in (
        (config.mount_dir, "mount directory"),
        (config.image, "image file"),
        (config.qemu_bin, "QEMU binary"),
    ):
        validate_path(value, name)

    configure_logging(log_path=config.log_path, level=logging.DEBUG if config.verbose else logging.INFO)
    runner = CommandRunner(dry_run=config.dry_run)

    if args.status:
        return show_status(config, runner)

    if not config.dry_run:
        require_root()

    if args.cleanup_only:
        cleanup_only(config, runner)
        return EXIT_SUCCESS

    _preflight(config)

    logger.info("Starting SBC image manager")
    for key, value in config.summary().items():
        logger.info("%s: %s", key, value)

    run_session(config, runner)
    return EXIT_SUCCESS


def main(argv: Optional[list[str]] = None) -> int:
    try:
        return run(build_parser().parse_args(argv))
    except ImageManagerError as e:
        logger.error("%s", e)
        return e.exit_code
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return EXIT_GENERAL_ERROR
    except Exception:
        logger.exception("SBC image manager failed")
        return EXIT_GENERAL_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
