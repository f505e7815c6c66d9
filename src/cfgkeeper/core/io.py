"""Shared I/O utilities for atomic file operations and filename timestamps."""

import contextlib
import logging
import os
from datetime import datetime
from pathlib import Path

__all__ = [
    "atomic_write",
    "get_timestamp",
    "BACKUP_TIMESTAMP_FORMAT",
]

logger = logging.getLogger(__name__)

# Zero-padded so lexical order equals chronological order
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def get_timestamp(dt: datetime | None = None) -> str:
    """Generate a filename timestamp in local time.

    Args:
        dt: Optional datetime to format. Defaults to now.

    Returns:
        Timestamp string in format YYYYMMDD_HHMMSS.

    Example:
        >>> get_timestamp(datetime(2025, 1, 13, 15, 45, 30))
        '20250113_154530'

    """
    if dt is None:
        dt = datetime.now()
    return dt.strftime(BACKUP_TIMESTAMP_FORMAT)


def atomic_write(path: Path, content: str) -> None:
    """Write content to file atomically using temp file + os.replace.

    Readers (including file watchers) never observe a half-written file.

    Args:
        path: Target file path.
        content: Text content to write (UTF-8).

    Raises:
        OSError: If the write or rename fails.

    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f".{path.name}.tmp.{os.getpid()}")
    try:
        with temp_path.open("w", encoding="utf-8", newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except Exception:
        if temp_path.exists():
            with contextlib.suppress(OSError):
                temp_path.unlink()
        raise
