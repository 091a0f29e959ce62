"""
Value types shared by the backup pipeline.

- BackupConfig: resolved configuration handed to the orchestrator
- BackupJob: per-run parameters, immutable for the run's duration
- ArchiveEntry: one filesystem entry produced by the tree walker
- ArchiveSegment: one sealed zip container in the staging area
- BackupResult: structured outcome of a run
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ConfigError


ARCHIVE_EXTENSION = '.zip'


def _int_setting(settings: Mapping[str, Any], key: str, default: int, minimum: int) -> int:
    value = settings.get(key)
    if value is None or value == '':
        return default

    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}")

    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")

    return value


@dataclass(frozen=True)
class BackupConfig:
    """
    Resolved backup configuration.

    Built by the application layer from its config mapping; the core never
    reads environment variables or config files itself.
    """
    source_path: Path
    bucket_name: str
    credentials: Union[Path, Mapping[str, Any]]
    staging_dir: Path
    destination_folder: Optional[str] = None
    chunk_size: int = 50
    retention_days: int = 7
    upload_workers: int = 4
    upload_timeout: int = 300
    upload_retries: int = 0
    upload_retry_delay: int = 5
    endpoint_url: Optional[str] = None

    def __post_init__(self):
        if not self.bucket_name:
            raise ConfigError("Bucket name is required")
        if self.chunk_size < 1:
            raise ConfigError(f"Chunk size must be >= 1, got {self.chunk_size}")
        if self.retention_days < 0:
            raise ConfigError(f"Retention days must be >= 0, got {self.retention_days}")
        if self.upload_workers < 1:
            raise ConfigError(f"Upload workers must be >= 1, got {self.upload_workers}")

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> 'BackupConfig':
        """
        Build a BackupConfig from an application config mapping.

        Args:
            settings: Mapping with SOURCE_PATH, BUCKET_NAME, CREDENTIALS_PATH,
                STAGING_DIR and the optional tuning keys

        Returns:
            BackupConfig instance

        Raises:
            ConfigError: If a required key is missing or a value is invalid
        """
        for key in ('SOURCE_PATH', 'BUCKET_NAME', 'CREDENTIALS_PATH', 'STAGING_DIR'):
            if not settings.get(key):
                raise ConfigError(f"{key} is not configured")

        return cls(
            source_path=Path(settings['SOURCE_PATH']).expanduser(),
            bucket_name=settings['BUCKET_NAME'],
            credentials=Path(settings['CREDENTIALS_PATH']).expanduser(),
            staging_dir=Path(settings['STAGING_DIR']).expanduser(),
            destination_folder=settings.get('DESTINATION_FOLDER') or None,
            chunk_size=_int_setting(settings, 'CHUNK_SIZE', 50, 1),
            retention_days=_int_setting(settings, 'RETENTION_DAYS', 7, 0),
            upload_workers=_int_setting(settings, 'UPLOAD_WORKERS', 4, 1),
            upload_timeout=_int_setting(settings, 'UPLOAD_TIMEOUT', 300, 1),
            upload_retries=_int_setting(settings, 'UPLOAD_RETRIES', 0, 0),
            upload_retry_delay=_int_setting(settings, 'UPLOAD_RETRY_DELAY', 5, 0),
            endpoint_url=settings.get('S3_ENDPOINT_URL') or None
        )


@dataclass(frozen=True)
class BackupJob:
    """Parameters of a single backup run."""
    source_path: Path
    bucket_name: str
    staging_dir: Path
    timestamp: datetime
    destination_prefix: Optional[str] = None

    @property
    def base_name(self) -> str:
        return self.source_path.name or 'backup'

    @property
    def run_name(self) -> str:
        """Run directory name: {sourceBaseName}-{YYYYMMDD}."""
        return f"{self.base_name}-{self.timestamp.strftime('%Y%m%d')}"

    @property
    def run_dir(self) -> Path:
        return self.staging_dir / self.run_name

    @property
    def remote_dir(self) -> str:
        """
        Key prefix shared by all segments of the run: {prefix}/{baseName}-{date}.

        The prefix is omitted when not configured; surrounding slashes in the
        prefix are ignored.
        """
        prefix = (self.destination_prefix or '').strip('/')
        if prefix:
            return f"{prefix}/{self.run_name}"
        return self.run_name

    def remote_key(self, segment_index: int) -> str:
        return f"{self.remote_dir}/{segment_index}{ARCHIVE_EXTENSION}"


class EntryKind(enum.Enum):
    FILE = 'file'
    DIRECTORY = 'directory'


@dataclass(frozen=True)
class ArchiveEntry:
    """
    A file or directory below the source root.

    Content is not read until read_bytes() is called, and only for files.
    """
    relative_path: PurePosixPath
    kind: EntryKind
    source: Path

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def member_name(self) -> str:
        """Zip member name; directories carry a trailing slash."""
        name = self.relative_path.as_posix()
        if self.kind is EntryKind.DIRECTORY:
            return name + '/'
        return name

    def read_bytes(self) -> bytes:
        if not self.is_file:
            raise IsADirectoryError(str(self.source))
        return self.source.read_bytes()


@dataclass(frozen=True)
class ArchiveSegment:
    """A sealed segment ready for upload. Immutable once emitted."""
    index: int
    local_path: Path
    entry_count: int
    file_count: int
    sealed: bool = True


class RunState(enum.Enum):
    INIT = 'init'
    VALIDATED = 'validated'
    ARCHIVING = 'archiving'
    UPLOADING = 'uploading'
    SWEEPING = 'sweeping'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class BackupResult:
    """Outcome of one backup run."""
    state: RunState = RunState.INIT
    segments_created: int = 0
    segments_uploaded: int = 0
    segments_failed: int = 0
    files_removed_by_retention: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None
    uploaded: List[str] = field(default_factory=list)
    failures: Dict[int, str] = field(default_factory=dict)
    retention_errors: List[str] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.state is RunState.DONE

    @property
    def status(self) -> str:
        return 'success' if self.success else 'failed'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'state': self.state.value,
            'segments_created': self.segments_created,
            'segments_uploaded': self.segments_uploaded,
            'segments_failed': self.segments_failed,
            'files_removed_by_retention': self.files_removed_by_retention,
            'error': self.error,
            'error_type': self.error_type,
            'uploaded': list(self.uploaded),
            'failures': {str(index): message for index, message in self.failures.items()},
            'retention_errors': list(self.retention_errors),
            'skipped': [{'path': path, 'reason': reason} for path, reason in self.skipped],
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None
        }
