from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from ..errors import ValidationFailure
from .command import CommandRunner
from .env import MIN_IMAGE_SIZE

logger = logging.getLogger(__name__)

_DISK_IMAGE_TYPES = re.compile(r"DOS/MBR boot sector|Linux.*filesystem|data")


def format_size(num_bytes: float) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f} {units[unit]}"


def validate_image(image: str, runner: CommandRunner, *, min_size: int = MIN_IMAGE_SIZE) -> int:
    """Check the raw image before anything touches it. Returns its size."""

    logger.info("Validating image integrity...")
    p = Path(image)
    if not p.is_file():
        raise ValidationFailure(f"Image file not found: {image}")

    size = p.stat().st_size
    if size < min_size:
        raise ValidationFailure(f"Image file too small ({format_size(size)}, minimum {format_size(min_size)})")

    r = runner.run(["file", image], check=False)
    file_type = (r.stdout or "").strip()
    if not _DISK_IMAGE_TYPES.search(file_type):
        logger.warning("Unexpected file type: %s", file_type or "unknown")
        logger.info("Continuing anyway...")

    logger.info("Image validation passed (%s)", format_size(size))
    return size


def backup_image(image: str, *, dry_run: bool = False) -> str:
    backup = f"{image}.backup"
    if dry_run:
        logger.info("Would create backup %s", backup)
        return backup
    logger.info("Creating backup: %s", backup)
    shutil.copy2(image, backup)
    logger.info("Backup created: %s", backup)
    return backup
