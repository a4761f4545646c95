"""
Copy-and-transform pipeline.

Copies a fixed list of files into a destination tree, rewriting text
content with a transform function and file/folder names with the
substitution rules. It is intentionally dumb about which files were
selected and why.

Files are processed one at a time, in order. A failure on one file is
recorded and the batch carries on.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Union

from .anonymizer import Replacement, Transform, anonymize_path
from .scanner import is_binary_file
from .utils import ensure_parent_dir, to_posix

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class SourceFile:
    absolute_path: Path
    relative_path: str


@dataclass(frozen=True)
class CopyOutcome:
    relative_path: str
    cloaked_path: str
    copied: bool = False
    transformed: bool = False
    error: Optional[str] = None

    @property
    def renamed(self) -> bool:
        return self.cloaked_path != self.relative_path


@dataclass
class CopyResult:
    total: int = 0
    copied: int = 0
    transformed: int = 0
    paths_renamed: int = 0
    errors: List[dict] = field(default_factory=list)

    def add(self, outcome: CopyOutcome) -> None:
        if outcome.renamed:
            self.paths_renamed += 1
        if outcome.copied:
            self.copied += 1
        if outcome.transformed:
            self.transformed += 1
        if outcome.error is not None:
            self.errors.append({"file": outcome.relative_path, "error": outcome.error})


FileInput = Union[SourceFile, str, Path]


# ---------------------------------------------------------------------------
# Single file
# ---------------------------------------------------------------------------


def copy_file(source: Path, dest: Path) -> None:
    ensure_parent_dir(dest)
    shutil.copyfile(source, dest)


def copy_file_with_transform(source: Path, dest: Path, transform: Transform) -> bool:
    """
    Copy one file, passing text content through ``transform``.

    Binary files (by extension) are copied byte for byte. Text that cannot
    be read or decoded as UTF-8 falls back to a raw copy.

    Returns:
        True if the written content differs from the source.
    """

    ensure_parent_dir(dest)

    if is_binary_file(source):
        shutil.copyfile(source, dest)
        return False

    try:
        content = source.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Raw copy of %s (%s)", source, e)
        shutil.copyfile(source, dest)
        return False

    result = transform(content)
    # Bytes round-trip keeps line endings untouched.
    dest.write_bytes(result.encode("utf-8"))
    return result != content


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


def _normalize(item: FileInput, source_base: Optional[Path]) -> SourceFile:
    if isinstance(item, (str, Path)):
        path = Path(item)
        return SourceFile(absolute_path=path, relative_path=to_posix(path.relative_to(source_base)))
    return SourceFile(absolute_path=Path(item.absolute_path), relative_path=to_posix(item.relative_path))


def _destination(dest_base: Path, cloaked: str) -> Path:
    """Join a cloaked path onto ``dest_base``, refusing anything that leaves it."""

    if not cloaked or Path(cloaked).is_absolute():
        raise ValueError(f"Refusing to write outside the destination: {cloaked!r}")

    dest = dest_base / cloaked
    try:
        dest.resolve().relative_to(dest_base.resolve())
    except ValueError:
        raise ValueError(f"Refusing to write outside the destination: {cloaked!r}") from None
    return dest


def iter_copy_files(
    files: Iterable[FileInput],
    dest_base: str | Path,
    transform: Optional[Transform] = None,
    replacements: Optional[Sequence[Replacement]] = None,
    source_base: Optional[str | Path] = None,
    simultaneous: bool = False,
) -> Iterator[CopyOutcome]:
    """
    Copy files lazily, yielding one outcome per file.

    Nothing happens until the iterator is consumed, and a caller can stop
    between any two files simply by not asking for the next one.

    Raises:
        ValueError: a plain path was given without ``source_base``
    """

    dest_base = Path(dest_base)
    base = Path(source_base) if source_base is not None else None

    for item in files:
        if base is None and isinstance(item, (str, Path)):
            raise ValueError(f"source_base is required for plain path {item}")

        label = to_posix(item) if isinstance(item, (str, Path)) else to_posix(item.relative_path)
        cloaked = label
        try:
            source = _normalize(item, base)
            label = source.relative_path
            cloaked = anonymize_path(source.relative_path, replacements, simultaneous=simultaneous)
            dest = _destination(dest_base, cloaked)

            if transform is not None:
                transformed = copy_file_with_transform(source.absolute_path, dest, transform)
            else:
                copy_file(source.absolute_path, dest)
                transformed = False
        except Exception as e:
            logger.warning("Failed to copy %s: %s", label, e)
            yield CopyOutcome(relative_path=label, cloaked_path=cloaked, error=str(e))
            continue

        yield CopyOutcome(
            relative_path=source.relative_path,
            cloaked_path=cloaked,
            copied=True,
            transformed=transformed,
        )


def copy_files(
    files: Sequence[FileInput],
    dest_base: str | Path,
    transform: Optional[Transform] = None,
    on_progress: Optional[ProgressCallback] = None,
    replacements: Optional[Sequence[Replacement]] = None,
    source_base: Optional[str | Path] = None,
    simultaneous: bool = False,
) -> CopyResult:
    """
    Copy every file and return the aggregated counts.

    ``on_progress(done, total, cloaked_path)`` is called after each file.
    """

    files = list(files)
    result = CopyResult(total=len(files))

    outcomes = iter_copy_files(
        files,
        dest_base,
        transform=transform,
        replacements=replacements,
        source_base=source_base,
        simultaneous=simultaneous,
    )
    for done, outcome in enumerate(outcomes, start=1):
        result.add(outcome)
        if on_progress is not None:
            on_progress(done, result.total, outcome.cloaked_path)

    return result
