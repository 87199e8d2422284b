"""Filesystem lookups used by the built-in commands."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def home_directory() -> Path:
    return Path.home()


def is_directory(path: str | Path) -> bool:
    """Check that a path exists and is a directory."""
    try:
        return Path(path).is_dir()
    except OSError:
        return False


def list_directory(path: str | Path, include_hidden: bool = False) -> list[Path]:
    """List directory entries sorted by path.

    Entries whose names begin with a dot are skipped unless
    ``include_hidden`` is set. An unreadable directory lists as empty.
    """
    try:
        entries = list(Path(path).iterdir())
    except OSError as e:
        logger.warning("Cannot list %s: %s", path, e)
        return []
    if not include_hidden:
        entries = [entry for entry in entries if not entry.name.startswith(".")]
    return sorted(entries, key=lambda entry: str(entry))
