"""
Chunked zip archiving of a walked source tree.

Entries are written into numbered segments ``{staging_dir}/{index}.zip``. A
segment holds at most ``chunk_size`` files; directory markers never count
towards the limit and never open a segment on their own. A full segment stays
open until the next file arrives, so trailing directory markers land in it
instead of in an otherwise empty segment.

Segments are sealed (the zip central directory written and the file closed)
before they are handed to the caller. An empty tree still yields exactly one
empty segment.
"""

import logging
import stat
import struct
import time
import zipfile
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

from .errors import ArchiveError
from .models import ARCHIVE_EXTENSION, ArchiveEntry, ArchiveSegment


logger = logging.getLogger(__name__)

FILE_MODE = stat.S_IFREG | 0o644
DIRECTORY_MODE = stat.S_IFDIR | 0o755
MSDOS_DIRECTORY_FLAG = 0x10
EARLIEST_ZIP_DATE = (1980, 1, 1, 0, 0, 0)
LATEST_ZIP_DATE = (2107, 12, 31, 23, 59, 58)


def segment_filename(index: int) -> str:
    return f"{index}{ARCHIVE_EXTENSION}"


def _zip_date_time(mtime: float) -> Tuple[int, ...]:
    date_time = time.localtime(mtime)[:6]
    if date_time[0] < 1980:
        return EARLIEST_ZIP_DATE
    if date_time[0] > 2107:
        return LATEST_ZIP_DATE
    return date_time


class _SegmentWriter:
    """An open segment. Owned by the archiver until sealed."""

    def __init__(self, index: int, path: Path):
        self.index = index
        self.path = path
        self.entry_count = 0
        self.file_count = 0

        try:
            self._zip = zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED)
        except OSError as e:
            raise ArchiveError(f"Failed to create segment {path}: {e}") from e

    def add_directory(self, entry: ArchiveEntry, mtime: float):
        info = zipfile.ZipInfo(entry.member_name, date_time=_zip_date_time(mtime))
        info.compress_type = zipfile.ZIP_STORED
        info.external_attr = (DIRECTORY_MODE << 16) | MSDOS_DIRECTORY_FLAG
        self._write(info, b'')

    def add_file(self, entry: ArchiveEntry, data: bytes, mtime: float):
        info = zipfile.ZipInfo(entry.member_name, date_time=_zip_date_time(mtime))
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = FILE_MODE << 16
        self._write(info, data)
        self.file_count += 1

    def _write(self, info: zipfile.ZipInfo, data: bytes):
        try:
            self._zip.writestr(info, data)
        except (OSError, ValueError, struct.error) as e:
            raise ArchiveError(f"Failed to write {info.filename} to {self.path}: {e}") from e
        self.entry_count += 1

    def seal(self) -> ArchiveSegment:
        try:
            self._zip.close()
        except OSError as e:
            raise ArchiveError(f"Failed to finalize segment {self.path}: {e}") from e

        return ArchiveSegment(
            index=self.index,
            local_path=self.path,
            entry_count=self.entry_count,
            file_count=self.file_count
        )

    def close(self):
        """Finalize the container after an interruption or a failed write."""
        try:
            self._zip.close()
        except (OSError, ValueError) as e:
            logger.warning(f"Could not finalize partial segment {self.path}: {e}")


class ChunkedArchiver:
    """
    Splits a stream of entries into sealed zip segments.

    Unreadable files are skipped and recorded in ``skipped``; any failure to
    write a segment raises ArchiveError and leaves the partial segment files
    on disk.
    """

    def __init__(self, staging_dir, chunk_size: int):
        if chunk_size < 1:
            raise ValueError(f"Chunk size must be >= 1, got {chunk_size}")

        self.staging_dir = Path(staging_dir)
        self.chunk_size = chunk_size
        self.skipped: List[Tuple[str, str]] = []

    def archive(self, entries: Iterable[ArchiveEntry]) -> Iterator[ArchiveSegment]:
        """
        Archive entries into segments.

        Args:
            entries: Entries in walk order

        Yields:
            Sealed ArchiveSegment values with indices 0..N-1

        Raises:
            ArchiveError: If the staging directory or a segment cannot be written
        """
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveError(f"Failed to create staging directory {self.staging_dir}: {e}") from e

        writer: Optional[_SegmentWriter] = None
        index = 0

        try:
            for entry in entries:
                try:
                    mtime = entry.source.stat().st_mtime
                    data = entry.read_bytes() if entry.is_file else None
                except OSError as e:
                    self._skip(entry, e)
                    continue

                if writer is None:
                    writer = self._open(index)
                elif entry.is_file and writer.file_count >= self.chunk_size:
                    segment = self._seal(writer)
                    writer = None
                    yield segment
                    index += 1
                    writer = self._open(index)

                if entry.is_file:
                    writer.add_file(entry, data, mtime)
                else:
                    writer.add_directory(entry, mtime)

            if writer is None:
                writer = self._open(index)

            segment = self._seal(writer)
            writer = None
            yield segment

        finally:
            if writer is not None:
                writer.close()

    def _open(self, index: int) -> _SegmentWriter:
        path = self.staging_dir / segment_filename(index)
        logger.debug(f"Opening segment {index}: {path}")
        return _SegmentWriter(index, path)

    def _seal(self, writer: _SegmentWriter) -> ArchiveSegment:
        segment = writer.seal()
        logger.info(
            f"Sealed segment {segment.index} ({segment.file_count} files, "
            f"{segment.entry_count} entries)"
        )
        return segment

    def _skip(self, entry: ArchiveEntry, error: OSError):
        path = entry.relative_path.as_posix()
        logger.warning(f"Skipping unreadable {entry.kind.value} {path}: {error}")
        self.skipped.append((path, str(error)))


def archive(entries: Iterable[ArchiveEntry], staging_dir, chunk_size: int) -> Iterator[ArchiveSegment]:
    """Archive entries into sealed segments under staging_dir."""
    return ChunkedArchiver(staging_dir, chunk_size).archive(entries)
