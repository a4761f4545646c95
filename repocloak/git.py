"""
Git working tree status, used as an alternative way to pick files.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


def is_git_repo(path: str | Path) -> bool:
    return (Path(path) / ".git").exists()


def parse_porcelain(output: str) -> List[str]:
    """
    Parse ``git status --porcelain`` output into relative paths.

    Renames resolve to their new name and deleted files are dropped.
    """

    files: List[str] = []

    for line in output.splitlines():
        if not line.strip():
            continue

        status = line[:2]
        name = line[3:].strip()

        if "D" in status:
            continue

        if " -> " in name:
            name = name.split(" -> ", 1)[1]

        # git quotes names containing spaces or special characters
        if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
            name = name[1:-1]

        files.append(name)

    return files


def get_changed_files(path: str | Path) -> List[str]:
    """Changed, added and untracked files; empty if git is unavailable."""

    try:
        proc = subprocess.run(
            ["git", "status", "--porcelain", "-u"],
            cwd=str(path),
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("git status failed in %s: %s", path, e)
        return []

    return parse_porcelain(proc.stdout)
