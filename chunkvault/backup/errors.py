"""
Exception types raised by the backup core.

Structural errors (ConfigError, FilesystemError, ArchiveError, CredentialError)
abort a run. UploadError and RetentionError are isolated per segment / per file
and collected into the run result instead.
"""


class BackupError(Exception):
    """Base class for all backup errors."""
    pass


class ConfigError(BackupError):
    """Raised when the backup configuration is missing or invalid."""
    pass


class FilesystemError(ConfigError):
    """Raised when the source path does not exist or is not a directory."""
    pass


class ArchiveError(BackupError):
    """Raised when writing an archive segment fails."""
    pass


class CredentialError(BackupError):
    """Raised when storage credentials cannot be loaded or parsed."""
    pass


class UploadError(BackupError):
    """Raised when a single segment upload fails."""

    def __init__(self, message: str, segment_index: int = None, key: str = None):
        super().__init__(message)
        self.segment_index = segment_index
        self.key = key


class RetentionError(BackupError):
    """Raised when a stale archive cannot be removed."""

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path
