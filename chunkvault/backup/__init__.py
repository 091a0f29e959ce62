"""
Backup module for chunkvault.

This module handles the core backup functionality including:
- Source tree traversal
- Chunked zip archiving
- Upload to S3
- Run orchestration
- Local retention cleanup
"""

from .archiver import ChunkedArchiver, archive
from .errors import (
    BackupError,
    ConfigError,
    FilesystemError,
    ArchiveError,
    CredentialError,
    UploadError,
    RetentionError
)
from .models import BackupConfig, BackupJob, BackupResult, RunState
from .orchestrator import BackupOrchestrator, run_backup
from .retention import RetentionSweeper, enforce_retention
from .uploader import ObjectUploader, load_credentials
from .walker import TreeWalker, walk

__all__ = [
    'ChunkedArchiver',
    'archive',
    'BackupError',
    'ConfigError',
    'FilesystemError',
    'ArchiveError',
    'CredentialError',
    'UploadError',
    'RetentionError',
    'BackupConfig',
    'BackupJob',
    'BackupResult',
    'RunState',
    'BackupOrchestrator',
    'run_backup',
    'RetentionSweeper',
    'enforce_retention',
    'ObjectUploader',
    'load_credentials',
    'TreeWalker',
    'walk'
]
