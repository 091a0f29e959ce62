"""
Deterministic traversal of the backup source tree.

Entries are produced depth-first, sorted by name within each directory, with
each directory emitted before its children. The source root itself is never
emitted. Symlinked directories are not followed.
"""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Tuple

from .errors import FilesystemError
from .models import ArchiveEntry, EntryKind


logger = logging.getLogger(__name__)


def validate_source(source_path) -> Path:
    """
    Check that the source path exists and is a directory.

    Args:
        source_path: Root of the tree to back up

    Returns:
        Resolved source path

    Raises:
        FilesystemError: If the path is missing or not a directory
    """
    root = Path(source_path).expanduser()

    if not root.exists():
        raise FilesystemError(f"Source directory does not exist: {root}")
    if not root.is_dir():
        raise FilesystemError(f"Source path is not a directory: {root}")

    return root.resolve()


class TreeWalker:
    """
    Restartable producer of ArchiveEntry values for a source tree.

    Each iteration starts a fresh walk. Entries that cannot be read are skipped;
    their relative path and the reason are appended to ``skipped``.
    """

    def __init__(self, source_path):
        self.root = validate_source(source_path)
        self.skipped: List[Tuple[str, str]] = []

    def __iter__(self) -> Iterator[ArchiveEntry]:
        self.skipped = []
        return self._walk_directory(self.root, PurePosixPath())

    def _skip(self, relative_path: PurePosixPath, reason: str):
        logger.warning(f"Skipping {relative_path.as_posix() or '.'}: {reason}")
        self.skipped.append((relative_path.as_posix(), reason))

    def _walk_directory(self, directory: Path, relative: PurePosixPath) -> Iterator[ArchiveEntry]:
        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda e: e.name)
        except OSError as e:
            self._skip(relative, f"cannot list directory: {e}")
            return

        for child in children:
            child_relative = relative / child.name

            try:
                if child.is_dir(follow_symlinks=False):
                    kind = EntryKind.DIRECTORY
                elif child.is_file():
                    kind = EntryKind.FILE
                else:
                    self._skip(child_relative, "not a regular file or directory")
                    continue
            except OSError as e:
                self._skip(child_relative, f"cannot stat: {e}")
                continue

            yield ArchiveEntry(
                relative_path=child_relative,
                kind=kind,
                source=Path(child.path)
            )

            if kind is EntryKind.DIRECTORY:
                yield from self._walk_directory(Path(child.path), child_relative)


def walk(source_path) -> Iterator[ArchiveEntry]:
    """
    Walk a source tree.

    Validation happens immediately, so a missing root raises FilesystemError
    at call time rather than on first iteration.
    """
    return iter(TreeWalker(source_path))
