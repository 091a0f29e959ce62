"""
Shared pytest fixtures for chunkvault tests.

This module provides fixtures for:
- Flask app and test client
- Source trees of various shapes
- Credentials files and resolved backup configuration
- Mock fixtures for external services (S3, APScheduler)
"""

import json
import os
import time
from unittest.mock import MagicMock, patch

import pytest
import boto3
from moto import mock_aws

from chunkvault import create_app
from chunkvault.backup.models import BackupConfig


DAY = 24 * 60 * 60


def make_tree(root, file_count, per_directory=None):
    """
    Create a source tree with file_count files.

    Files are spread over subdirectories of per_directory files each
    (all in root when per_directory is None).
    """
    root.mkdir(parents=True, exist_ok=True)

    for i in range(file_count):
        if per_directory:
            directory = root / f"dir{i // per_directory:03d}"
            directory.mkdir(exist_ok=True)
        else:
            directory = root
        (directory / f"file{i:04d}.txt").write_text(f"content of file {i}\n" * 10)

    return root


def age_file(path, days):
    """Set a file's modification time to `days` days ago."""
    timestamp = time.time() - days * DAY
    os.utime(path, (timestamp, timestamp))


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a small source tree.

    Creates:
    - a.txt
    - b.log
    - docs/ (with guide.md and empty/)
    - src/ (with main.py and pkg/util.py)
    """
    root = tmp_path / 'project'
    root.mkdir()

    (root / 'a.txt').write_text('alpha')
    (root / 'b.log').write_text('log line\n' * 50)

    docs = root / 'docs'
    docs.mkdir()
    (docs / 'guide.md').write_text('# Guide')
    (docs / 'empty').mkdir()

    src = root / 'src'
    (src / 'pkg').mkdir(parents=True)
    (src / 'main.py').write_text('print("hi")')
    (src / 'pkg' / 'util.py').write_text('def util():\n    return 1\n')

    return root


@pytest.fixture
def source_tree_paths():
    """Relative zip member names for every entry in source_tree."""
    return {
        'a.txt',
        'b.log',
        'docs/',
        'docs/empty/',
        'docs/guide.md',
        'src/',
        'src/main.py',
        'src/pkg/',
        'src/pkg/util.py'
    }


@pytest.fixture
def credentials_file(tmp_path):
    """Write a credentials JSON file with test keys."""
    path = tmp_path / 'credentials.json'
    path.write_text(json.dumps({
        'access_key': 'test_access_key',
        'secret_key': 'test_secret_key',
        'region': 'us-east-1'
    }))
    return path


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / 'staging'
    path.mkdir()
    return path


@pytest.fixture
def backup_config(source_tree, credentials_file, staging_dir):
    """Resolved configuration backing up source_tree to test-bucket."""
    return BackupConfig(
        source_path=source_tree,
        bucket_name='test-bucket',
        credentials=credentials_file,
        staging_dir=staging_dir,
        destination_folder='backups',
        chunk_size=50,
        retention_days=7,
        upload_workers=2,
        upload_timeout=30,
        upload_retries=0,
        upload_retry_delay=0
    )


@pytest.fixture(scope='function')
def app(tmp_path, source_tree, credentials_file):
    """
    Create Flask app with test configuration.

    The scheduler is not started for TESTING apps.
    """
    app = create_app('development', overrides={
        'TESTING': True,
        'SOURCE_PATH': str(source_tree),
        'BUCKET_NAME': 'test-bucket',
        'CREDENTIALS_PATH': str(credentials_file),
        'STAGING_DIR': str(tmp_path / 'app_staging'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'RETENTION_DAYS': 7,
    })

    yield app


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')

        yield s3


@pytest.fixture(scope='function')
def mock_scheduler():
    """
    Mock APScheduler for testing scheduler functionality.
    """
    with patch('chunkvault.scheduler.BackgroundScheduler') as mock_sched:
        scheduler_instance = MagicMock()
        mock_sched.return_value = scheduler_instance

        scheduler_instance.running = False
        scheduler_instance.state = 0
        scheduler_instance.get_jobs.return_value = []

        yield scheduler_instance
