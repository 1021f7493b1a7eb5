from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Tuple

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "sbc-image-manager.log"

FILE_FORMAT = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)
CONSOLE_FORMAT = logging.Formatter(
    fmt="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _open_log_file(log_path: str) -> Tuple[logging.Handler, str]:
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        # /var/log is root-only; a --dry-run or --status as a normal user lands here
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Send all records to log_path (and the console) once per process.

    Every external command and every cleanup decision ends up in the file.
    Later calls only adjust the level. Returns the file actually written,
    which is a file in the working directory when log_path cannot be opened.
    """

    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, "_sbc_configured", False):
        return getattr(root, "_sbc_log_path", log_path)

    file_handler, chosen_path = _open_log_file(log_path)
    file_handler.setFormatter(FILE_FORMAT)
    root.addHandler(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(CONSOLE_FORMAT)
        root.addHandler(console)

    setattr(root, "_sbc_configured", True)
    setattr(root, "_sbc_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
