"""
Shared utility helpers.

This module contains small, reusable helpers that do not belong
to substitution rules, mapping persistence, or encryption.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Tuple


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with milliseconds."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def split_pair(value: str, sep: str = "=") -> Tuple[str, str]:
    """
    Split ``"left=right"`` into its two halves.

    Only the first separator counts, so the right side may contain it.
    Both halves are stripped of surrounding whitespace.

    Raises:
        ValueError: if the separator is missing or either side is empty
    """

    left, found, right = value.partition(sep)
    left, right = left.strip(), right.strip()
    if not found or not left or not right:
        raise ValueError(f"Expected LEFT{sep}RIGHT, got: {value!r}")
    return left, right


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_parent_dir(path: Path) -> None:
    """Ensure the parent directory of a file exists."""
    path.parent.mkdir(parents=True, exist_ok=True)


def write_private_file(path: Path, data: str) -> None:
    """Write a text file readable and writable by the owner only."""
    ensure_parent_dir(path)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(data)
    # O_CREAT mode is ignored for files that already existed
    os.chmod(path, 0o600)


def to_posix(path: str | Path) -> str:
    """Return a relative path with forward slashes on every platform."""
    return Path(path).as_posix()
