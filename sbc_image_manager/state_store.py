"""On-disk record of what a session has acquired.

The record lets `--cleanup-only` and `--status` find the loop device and the
resolv.conf backup of a run that died without cleaning up (SIGKILL, power
loss). It is written after every setup step and removed after teardown.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"yaml", "yml"}:
        return "yaml"
    # Default to JSON for unknown extensions.
    return "json"


def load_record(path: str) -> Optional[Dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        return None

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) == "yaml":
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"Session record must be an object/dict, got {type(data)}")
    return data


def save_record(path: str, record: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) == "yaml":
        text = yaml.safe_dump(record, sort_keys=False)
    else:
        text = json.dumps(record, indent=2, sort_keys=True) + "\n"

    tmp = p.with_name(p.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(p)


def clear_record(path: str) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return
    logger.debug("Removed session record %s", path)
