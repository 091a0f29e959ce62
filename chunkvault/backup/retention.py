"""
Local retention policy for staged archives.

Removes archive files from the staging area once their last-modified time is
older than the retention window. Failures to delete individual files are
collected and reported, never raised.
"""

import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import RetentionError
from .models import ARCHIVE_EXTENSION


logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Deletes stale archives from a staging directory.

    ``removed`` and ``errors`` accumulate across sweeps made with the same
    instance.
    """

    def __init__(self, extension: str = ARCHIVE_EXTENSION):
        self.extension = extension
        self.removed: List[Path] = []
        self.errors: List[RetentionError] = []

    def sweep(self, staging_dir, max_age: timedelta) -> int:
        """
        Delete archives in staging_dir older than max_age.

        Only immediate children are considered.

        Args:
            staging_dir: Directory to sweep
            max_age: Files strictly older than this are removed

        Returns:
            Number of files removed
        """
        directory = Path(staging_dir)
        if not directory.is_dir():
            return 0

        cutoff = time.time() - max_age.total_seconds()
        removed_count = 0

        try:
            candidates = sorted(directory.iterdir())
        except OSError as e:
            self._error(RetentionError(f"Failed to list {directory}: {e}", str(directory)))
            return 0

        for path in candidates:
            if path.suffix != self.extension:
                continue

            try:
                if not path.is_file() or path.stat().st_mtime >= cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                self._error(RetentionError(f"Failed to delete {path}: {e}", str(path)))
                continue

            removed_count += 1
            self.removed.append(path)
            logger.info(f"Removed old backup: {path}")

        return removed_count

    def sweep_staging_area(self, staging_root, max_age: timedelta, exclude: Optional[Path] = None) -> int:
        """
        Sweep the staging root and every run directory directly below it.

        Run directories left empty are removed once the directory itself is
        older than max_age. ``exclude`` (the active run's directory) is neither
        swept nor removed.

        Returns:
            Number of files removed
        """
        root = Path(staging_root)
        if not root.is_dir():
            return 0

        excluded = Path(exclude).resolve() if exclude else None
        removed_count = self.sweep(root, max_age)

        for run_dir in sorted(p for p in root.iterdir() if p.is_dir()):
            if excluded is not None and run_dir.resolve() == excluded:
                continue

            # Deleting files bumps the directory mtime, so read it first
            try:
                run_dir_mtime = run_dir.stat().st_mtime
            except OSError as e:
                self._error(RetentionError(f"Failed to stat {run_dir}: {e}", str(run_dir)))
                continue

            removed_count += self.sweep(run_dir, max_age)

            # A recently created directory may belong to a run that is still archiving
            if run_dir_mtime >= time.time() - max_age.total_seconds():
                continue

            try:
                if not any(run_dir.iterdir()):
                    run_dir.rmdir()
                    logger.info(f"Removed empty run directory: {run_dir}")
            except OSError as e:
                self._error(RetentionError(f"Failed to remove {run_dir}: {e}", str(run_dir)))

        return removed_count

    def _error(self, error: RetentionError):
        logger.warning(str(error))
        self.errors.append(error)


def enforce_retention(staging_root, retention_days: int, exclude: Optional[Path] = None) -> Dict[str, Any]:
    """
    Apply the local retention window to a whole staging area.

    Called by the daily retention job and after each backup run.

    Returns:
        Dict with 'removed' (int) and 'errors' (list of messages)
    """
    sweeper = RetentionSweeper()
    removed = sweeper.sweep_staging_area(staging_root, timedelta(days=retention_days), exclude=exclude)

    logger.info(f"Retention enforcement complete. Removed: {removed}, Errors: {len(sweeper.errors)}")

    return {
        'removed': removed,
        'errors': [str(e) for e in sweeper.errors]
    }
