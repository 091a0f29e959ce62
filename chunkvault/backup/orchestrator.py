"""
Backup orchestrator - sequences one complete backup run.

Workflow:
1. Validate source path and resolve credentials (Init -> Validated)
2. Walk the source tree into sealed zip segments (Archiving)
3. Upload every segment, collecting per-segment failures (Uploading)
4. Apply local retention to older runs (Sweeping)
5. Report the result (Done, or Failed if any step failed)

Validation, credential and archive errors stop the run immediately. Upload
failures do not: every segment is attempted and the run is reported as failed
afterwards. Failed segments stay on disk for a later retry.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from contextlib import closing
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .archiver import ChunkedArchiver
from .errors import BackupError, UploadError
from .models import ArchiveSegment, BackupConfig, BackupJob, BackupResult, RunState
from .retention import RetentionSweeper
from .uploader import ObjectUploader, check_credentials_handle
from .walker import TreeWalker


logger = logging.getLogger(__name__)

# Seconds between checks of in-flight upload deadlines
UPLOAD_POLL_INTERVAL = 0.5


class BackupOrchestrator:
    """
    Runs the backup workflow for one resolved configuration.
    """

    def __init__(self, config: BackupConfig):
        """
        Initialize backup orchestrator.

        Args:
            config: Resolved backup configuration
        """
        self.config = config
        self.job: Optional[BackupJob] = None
        self.uploader: Optional[ObjectUploader] = None
        self.walker: Optional[TreeWalker] = None
        self.archiver: Optional[ChunkedArchiver] = None
        self._upload_started: Dict[int, float] = {}
        self.result = BackupResult()

    @property
    def state(self) -> RunState:
        return self.result.state

    def execute(self) -> BackupResult:
        """
        Execute one backup run.

        Returns:
            BackupResult with counts and terminal state (DONE or FAILED)
        """
        self.result.started_at = datetime.now(timezone.utc)
        self._log(f"Starting backup of {self.config.source_path} to bucket {self.config.bucket_name}")

        try:
            self._validate()
            segments = self._archive()
            self._upload(segments)
        except BackupError as e:
            self._fail(e)
            return self._finish()

        self._sweep()

        if self.result.segments_failed:
            self._transition(RunState.FAILED)
            self.result.error = f"{self.result.segments_failed} of {self.result.segments_created} segment uploads failed"
            self.result.error_type = UploadError.__name__
        else:
            self._transition(RunState.DONE)

        return self._finish()

    def _validate(self):
        """Check the source tree and resolve credentials into an uploader."""
        self.walker = TreeWalker(self.config.source_path)
        check_credentials_handle(self.config.credentials)

        self.uploader = ObjectUploader.from_credentials(
            self.config.credentials,
            self.config.bucket_name,
            timeout=self.config.upload_timeout,
            endpoint_url=self.config.endpoint_url
        )

        self.job = BackupJob(
            source_path=self.walker.root,
            bucket_name=self.config.bucket_name,
            staging_dir=self.config.staging_dir,
            timestamp=datetime.now(),
            destination_prefix=self.config.destination_folder
        )

        self._transition(RunState.VALIDATED)
        self._log(f"Destination: {self.uploader.location(self.job.remote_dir)}/")

    def _archive(self) -> List[ArchiveSegment]:
        """
        Archive the source tree into the run directory.

        Raises:
            ArchiveError: If a segment cannot be written
        """
        self._transition(RunState.ARCHIVING)
        self.archiver = ChunkedArchiver(self.job.run_dir, self.config.chunk_size)
        self._log(f"Archiving into {self.job.run_dir} (chunk size: {self.config.chunk_size})")

        segments = []
        try:
            with closing(self.archiver.archive(self.walker)) as produced:
                for segment in produced:
                    segments.append(segment)
                    self.result.segments_created += 1
        finally:
            self.result.skipped = list(self.walker.skipped) + list(self.archiver.skipped)

        file_count = sum(s.file_count for s in segments)
        self._log(
            f"Created {len(segments)} segments ({file_count} files, "
            f"{len(self.result.skipped)} entries skipped)"
        )
        return segments

    def _upload(self, segments: List[ArchiveSegment]):
        """
        Upload all segments on a bounded worker pool.

        A segment still transferring ``upload_timeout`` seconds after its
        first attempt started is marked failed. Its worker thread cannot be
        interrupted and is left to finish in the background.
        """
        self._transition(RunState.UPLOADING)

        workers = min(self.config.upload_workers, len(segments))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='chunkvault-upload')
        uploaded: Dict[int, str] = {}
        self._upload_started = {}
        abandoned = False

        try:
            futures = {executor.submit(self._upload_segment, segment): segment for segment in segments}
            pending = set(futures)

            while pending:
                done, pending = wait(pending, timeout=UPLOAD_POLL_INTERVAL, return_when=FIRST_COMPLETED)

                for future in done:
                    segment = futures[future]
                    try:
                        uploaded[segment.index] = future.result()
                    except Exception as e:
                        self._record_upload_failure(segment, e)

                for future in list(pending):
                    segment = futures[future]
                    if self._upload_expired(segment):
                        pending.discard(future)
                        abandoned = True
                        self._record_upload_failure(segment, UploadError(
                            f"Upload of segment {segment.index} timed out after {self.config.upload_timeout}s",
                            segment.index,
                            self.job.remote_key(segment.index)
                        ))
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        executor.shutdown(wait=not abandoned)

        self.result.uploaded = [uploaded[index] for index in sorted(uploaded)]
        self.result.segments_uploaded = len(uploaded)
        self.result.segments_failed = len(self.result.failures)
        self._log(
            f"Uploaded {self.result.segments_uploaded}/{len(segments)} segments"
            f" ({self.result.segments_failed} failed)"
        )

    def _upload_segment(self, segment: ArchiveSegment) -> str:
        key = self.job.remote_key(segment.index)
        attempts = self.config.upload_retries + 1
        self._upload_started[segment.index] = time.monotonic()

        for attempt in range(1, attempts + 1):
            try:
                return self.uploader.upload(segment, key)
            except UploadError as e:
                if attempt == attempts or self._upload_expired(segment):
                    raise
                delay = self.config.upload_retry_delay * attempt
                self._log(f"Upload of segment {segment.index} failed ({e}), retrying in {delay}s", logging.WARNING)
                time.sleep(delay)

    def _upload_expired(self, segment: ArchiveSegment) -> bool:
        started = self._upload_started.get(segment.index)
        if started is None:
            return False
        return time.monotonic() - started > self.config.upload_timeout

    def _record_upload_failure(self, segment: ArchiveSegment, error: Exception):
        self.result.failures[segment.index] = str(error)
        self._log(f"Upload of segment {segment.index} failed: {error}", logging.ERROR)

    def _sweep(self):
        """Apply local retention to the staging area, leaving this run's segments alone."""
        self._transition(RunState.SWEEPING)
        sweeper = RetentionSweeper()

        try:
            removed = sweeper.sweep_staging_area(
                self.config.staging_dir,
                timedelta(days=self.config.retention_days),
                exclude=self.job.run_dir
            )
        except OSError as e:
            removed = 0
            self.result.retention_errors.append(f"Retention sweep failed: {e}")
            self._log(f"Retention sweep failed: {e}", logging.WARNING)

        self.result.files_removed_by_retention = removed
        self.result.retention_errors.extend(str(e) for e in sweeper.errors)
        self._log(f"Retention removed {removed} old archives ({len(sweeper.errors)} errors)")

    def _transition(self, state: RunState):
        logger.debug(f"Backup state: {self.result.state.value} -> {state.value}")
        self.result.state = state

    def _fail(self, error: BackupError):
        self.result.error = str(error)
        self.result.error_type = type(error).__name__
        self._log(f"Backup failed during {self.result.state.value}: {error}", logging.ERROR)
        self._transition(RunState.FAILED)

    def _finish(self) -> BackupResult:
        self.result.completed_at = datetime.now(timezone.utc)
        if self.result.success:
            self._log(
                f"Backup completed successfully: {self.result.segments_created} created, "
                f"{self.result.segments_uploaded} uploaded"
            )
        else:
            self._log(
                f"Backup finished with status failed: {self.result.segments_created} created, "
                f"{self.result.segments_uploaded} uploaded, {self.result.segments_failed} failed",
                logging.ERROR
            )
        return self.result

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp to the run log.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.result.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def run_backup(config: BackupConfig) -> BackupResult:
    """
    Run one backup for a resolved configuration.

    Args:
        config: Resolved backup configuration

    Returns:
        BackupResult of the run
    """
    return BackupOrchestrator(config).execute()
