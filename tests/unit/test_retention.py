"""
Unit tests for local retention (chunkvault/backup/retention.py).

File ages are set with os.utime relative to the current time.
"""

from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from chunkvault.backup.retention import RetentionSweeper, enforce_retention

from conftest import age_file


SEVEN_DAYS = timedelta(days=7)


def make_archive(directory, name, days_old):
    path = directory / name
    path.write_bytes(b'zip data')
    age_file(path, days_old)
    return path


class TestRetentionSweeper:
    """Test RetentionSweeper.sweep on a single directory."""

    def test_sweep_removes_only_expired(self, staging_dir):
        """With a 7 day window, a 10 day old file goes and a 3 day old file stays."""
        recent = make_archive(staging_dir, 'recent.zip', 3)
        old = make_archive(staging_dir, 'old.zip', 10)

        removed = RetentionSweeper().sweep(staging_dir, SEVEN_DAYS)

        assert removed == 1
        assert recent.exists()
        assert not old.exists()

    def test_sweep_is_idempotent(self, staging_dir):
        """A second sweep right after the first removes nothing."""
        make_archive(staging_dir, 'old.zip', 10)
        make_archive(staging_dir, 'recent.zip', 3)
        sweeper = RetentionSweeper()

        assert sweeper.sweep(staging_dir, SEVEN_DAYS) == 1
        assert sweeper.sweep(staging_dir, SEVEN_DAYS) == 0

    def test_sweep_ignores_other_extensions(self, staging_dir):
        other = make_archive(staging_dir, 'notes.txt', 30)

        removed = RetentionSweeper().sweep(staging_dir, SEVEN_DAYS)

        assert removed == 0
        assert other.exists()

    def test_sweep_is_not_recursive(self, staging_dir):
        nested_dir = staging_dir / 'project-20240101'
        nested_dir.mkdir()
        nested = make_archive(nested_dir, '0.zip', 30)

        removed = RetentionSweeper().sweep(staging_dir, SEVEN_DAYS)

        assert removed == 0
        assert nested.exists()

    def test_sweep_missing_directory(self, tmp_path):
        assert RetentionSweeper().sweep(tmp_path / 'missing', SEVEN_DAYS) == 0

    def test_zero_day_window_removes_everything_older_than_now(self, staging_dir):
        archive = make_archive(staging_dir, 'yesterday.zip', 1)

        assert RetentionSweeper().sweep(staging_dir, timedelta(days=0)) == 1
        assert not archive.exists()

    def test_delete_failure_is_reported_not_raised(self, staging_dir):
        """One undeletable file does not stop the others from being swept."""
        locked = make_archive(staging_dir, 'a_locked.zip', 10)
        other = make_archive(staging_dir, 'b_other.zip', 10)
        real_unlink = Path.unlink

        def unlink(path, *args, **kwargs):
            if path.name == 'a_locked.zip':
                raise PermissionError(13, 'Permission denied')
            return real_unlink(path, *args, **kwargs)

        sweeper = RetentionSweeper()
        with patch.object(Path, 'unlink', autospec=True, side_effect=unlink):
            removed = sweeper.sweep(staging_dir, SEVEN_DAYS)

        assert removed == 1
        assert locked.exists()
        assert not other.exists()
        assert len(sweeper.errors) == 1
        assert sweeper.errors[0].path == str(locked)
        assert sweeper.removed == [other]


class TestSweepStagingArea:
    """Test sweeping the staging root and its run directories."""

    def test_old_run_directories_are_emptied_and_removed(self, staging_dir):
        old_run = staging_dir / 'project-20240101'
        old_run.mkdir()
        make_archive(old_run, '0.zip', 20)
        make_archive(old_run, '1.zip', 20)
        age_file(old_run, 20)

        recent_run = staging_dir / 'project-20240114'
        recent_run.mkdir()
        kept = make_archive(recent_run, '0.zip', 1)

        removed = RetentionSweeper().sweep_staging_area(staging_dir, SEVEN_DAYS)

        assert removed == 2
        assert not old_run.exists()
        assert kept.exists()

    def test_excluded_run_directory_is_untouched(self, staging_dir):
        current = staging_dir / 'project-20240115'
        current.mkdir()
        segment = make_archive(current, '0.zip', 30)

        removed = RetentionSweeper().sweep_staging_area(staging_dir, timedelta(days=0), exclude=current)

        assert removed == 0
        assert segment.exists()

    def test_recent_empty_run_directory_is_kept(self, staging_dir):
        """A run directory created just now may belong to a run still archiving."""
        active = staging_dir / 'project-20240115'
        active.mkdir()

        summary = enforce_retention(staging_dir, 7)

        assert summary == {'removed': 0, 'errors': []}
        assert active.is_dir()

    def test_recent_run_directory_emptied_by_sweep_is_kept(self, staging_dir):
        """Only the directory's own age decides removal, not its emptied contents."""
        run = staging_dir / 'project-20240110'
        run.mkdir()
        make_archive(run, '0.zip', 10)

        removed = RetentionSweeper().sweep_staging_area(staging_dir, SEVEN_DAYS)

        assert removed == 1
        assert run.is_dir()

    def test_root_level_archives_are_swept(self, staging_dir):
        make_archive(staging_dir, 'legacy.zip', 30)

        assert RetentionSweeper().sweep_staging_area(staging_dir, SEVEN_DAYS) == 1

    def test_enforce_retention_summary(self, staging_dir):
        run = staging_dir / 'project-20240101'
        run.mkdir()
        make_archive(run, '0.zip', 10)
        age_file(run, 10)

        summary = enforce_retention(staging_dir, 7)

        assert summary == {'removed': 1, 'errors': []}
