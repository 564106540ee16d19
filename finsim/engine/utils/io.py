"""Filesystem helpers for configuration files and run artefacts.

Artefacts (CSV time series, JSON summaries, logs) are written below
:data:`ARTIFACTS_ROOT` unless the caller provides an explicit directory.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Final

import yaml

ARTIFACTS_ROOT: Final[Path] = Path("artifacts")
DEFAULT_RUN_ROOT: Final[Path] = ARTIFACTS_ROOT / "runs"
DEFAULT_LOG_ROOT: Final[Path] = ARTIFACTS_ROOT / "logs"

__all__ = [
    "ARTIFACTS_ROOT",
    "DEFAULT_LOG_ROOT",
    "DEFAULT_RUN_ROOT",
    "ensure_dir",
    "safe_path_segment",
    "run_dir",
    "read_yaml",
    "write_yaml",
    "write_json",
]

# Characters rejected by at least one common filesystem.
INVALID_FS_CHARS = r'[<>:"/\\|?*\x00-\x1F]'


def ensure_dir(path: Path | str) -> Path:
    """Create ``path`` (and parents) if needed and return it as :class:`Path`."""

    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def safe_path_segment(name: str) -> str:
    """Return ``name`` with characters invalid in file names replaced by ``-``."""

    safe = re.sub(INVALID_FS_CHARS, "-", str(name))
    return safe.rstrip(" .")


def run_dir(base: Path | str = DEFAULT_RUN_ROOT, *, label: str | None = None) -> Path:
    """Create and return a timestamped run directory below ``base``."""

    stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    name = f"{stamp}_{safe_path_segment(label)}" if label else stamp
    return ensure_dir(Path(base) / name)


def read_yaml(path: Path | str) -> object:
    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def write_yaml(data: object, path: Path | str) -> Path:
    """Write ``data`` as YAML with sorted keys."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=True)
    return target


def write_json(data: object, path: Path | str, *, indent: int = 2) -> Path:
    """Serialise ``data`` as JSON terminated by a newline."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=indent, sort_keys=True)
        handle.write("\n")
    return target
