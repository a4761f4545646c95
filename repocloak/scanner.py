"""
Filesystem scanning.

This module is responsible for:
- walking a source or cloaked directory tree
- skipping version-control, build and editor directories, dotfiles and
  the mapping file
- classifying files as binary or text by extension

This module does NOT:
- copy or transform files
- read or write the mapping file
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, List

from .config import MAPPING_FILENAME
from .utils import to_posix

logger = logging.getLogger(__name__)

BINARY_EXTENSIONS: FrozenSet[str] = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".svg",
    ".mp3", ".mp4", ".wav", ".avi", ".mov", ".mkv", ".webm",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2",
    ".exe", ".dll", ".so", ".dylib", ".bin",
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
    ".sqlite", ".db", ".mdb",
})

IGNORED_NAMES: FrozenSet[str] = frozenset({
    "node_modules",
    ".git",
    ".svn",
    ".hg",
    ".DS_Store",
    "Thumbs.db",
    ".idea",
    ".vscode",
    "__pycache__",
    ".pytest_cache",
    "dist",
    "build",
    ".next",
    ".nuxt",
    "coverage",
    ".nyc_output",
    MAPPING_FILENAME,
    ".env",
    ".env.local",
})


def is_binary_file(path: str | Path) -> bool:
    """Classify a file as binary from its extension alone."""
    return Path(path).suffix.lower() in BINARY_EXTENSIONS


def should_ignore(name: str, extra: Iterable[str] = ()) -> bool:
    return name in IGNORED_NAMES or name.startswith(".") or name in extra


@dataclass(frozen=True)
class ScannedFile:
    absolute_path: Path
    relative_path: str
    name: str
    is_binary: bool


@dataclass(frozen=True)
class TreeNode:
    name: str
    path: Path
    relative_path: str
    is_directory: bool
    depth: int


class FileScanner:
    def __init__(self, root: str | Path, ignore: Iterable[str] = ()):
        self.root = Path(root)
        self.ignore = frozenset(ignore)

    def _entries(self, directory: Path) -> List[os.DirEntry]:
        try:
            with os.scandir(directory) as it:
                entries = [e for e in it if not should_ignore(e.name, self.ignore)]
        except OSError as e:
            logger.debug("Skipping unreadable directory %s: %s", directory, e)
            return []

        # Folders first, then by name
        entries.sort(key=lambda e: (not e.is_dir(follow_symlinks=False), e.name.lower()))
        return entries

    def scan(self) -> Iterator[ScannedFile]:
        """
        Walk the tree and yield every file that is not ignored.

        Yields:
            ScannedFile, with a POSIX relative path
        """

        stack = [self.root]
        while stack:
            directory = stack.pop()
            subdirs = []

            for entry in self._entries(directory):
                path = Path(entry.path)
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(path)
                    continue

                yield ScannedFile(
                    absolute_path=path,
                    relative_path=to_posix(path.relative_to(self.root)),
                    name=entry.name,
                    is_binary=is_binary_file(path),
                )

            stack.extend(reversed(subdirs))

    def get_all_files(self) -> List[ScannedFile]:
        return list(self.scan())

    def count_files(self) -> int:
        return sum(1 for _ in self.scan())

    def directory_tree(self, max_depth: int = 5) -> List[TreeNode]:
        """Flattened tree for display, folders before files at each level."""

        nodes: List[TreeNode] = []

        def walk(directory: Path, depth: int) -> None:
            if depth > max_depth:
                return

            for entry in self._entries(directory):
                path = Path(entry.path)
                is_dir = entry.is_dir(follow_symlinks=False)
                nodes.append(
                    TreeNode(
                        name=entry.name,
                        path=path,
                        relative_path=to_posix(path.relative_to(self.root)),
                        is_directory=is_dir,
                        depth=depth,
                    )
                )
                if is_dir:
                    walk(path, depth + 1)

        walk(self.root, 0)
        return nodes
