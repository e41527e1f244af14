# src/zip_aggregator/core.py

"""
Core logic for aggregating a bucket into a single ZIP archive.

Two interchangeable strategies implement `ArchivePipeline.run`:

- `StreamingArchivePipeline` copies each object straight from its read stream
  into the archive, which is itself streamed to the destination object. Peak
  memory is bounded by one copy chunk plus one upload part.
- `BufferedArchivePipeline` reads every object fully into memory, builds the
  archive in a local staging file, then reads that whole file back into memory
  before uploading it in one write. Same archive content, deliberately worse
  memory and local-storage profile.

Both process objects one at a time in listing order and print a resource
sample after every object and once more for the finished archive.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from contextlib import closing
from enum import Enum
from typing import BinaryIO, cast

from botocore.exceptions import BotoCoreError

from .archive import ArchiveWriter
from .clients import S3Client, build_s3_client
from .config import AppConfig
from .exceptions import ObjectReadError, StagingError
from .monitor import ResourceMonitor
from .schemas import ArchiveEntryHeader, ArchiveSummary, ObjectDescriptor

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "all.zip"
WASTE_ARCHIVE_NAME = "all-waste.zip"
# Never fold a previous run's output into the next archive.
ARCHIVE_NAMES = frozenset({ARCHIVE_NAME, WASTE_ARCHIVE_NAME})

DEFAULT_COPY_CHUNK_SIZE = 32 * 1024


class PipelineState(str, Enum):
    IDLE = "idle"
    ENUMERATING = "enumerating"
    OPENING = "opening"
    COPYING = "copying"
    CLOSING = "closing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


# --- Helpers ---
def _read_object(
    stream: BinaryIO, bucket: str, key: str, size: int | None = None
) -> bytes:
    """
    Reads up to *size* bytes from *stream* (everything when *size* is None),
    reporting transport failures as ObjectReadError.
    """
    try:
        return stream.read() if size is None else stream.read(size)
    except (BotoCoreError, OSError) as e:
        raise ObjectReadError(
            bucket,
            key,
            operation="read",
            reason="transport_error",
            context={"transport_error": str(e)},
        ) from e


class StagingFile:
    """
    Local temporary file holding the in-progress archive.

    The file is created on enter and removed on exit whatever happened in
    between. A removal failure is raised only when nothing else failed;
    otherwise it is logged and the original error keeps propagating.
    """

    def __init__(self, prefix: str, directory: str | None = None):
        self._prefix = prefix
        self._directory = directory
        self.path: str | None = None

    def __enter__(self) -> "StagingFile":
        try:
            fd, self.path = tempfile.mkstemp(prefix=self._prefix, dir=self._directory)
        except OSError as e:
            raise StagingError(
                None,
                "create",
                context={"directory": self._directory, "os_error": str(e)},
            ) from e
        os.close(fd)
        logger.debug("Staging file created", extra={"path": self.path})
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._remove(raise_errors=exc_type is None)
        return False

    def open(self, mode: str = "rb") -> BinaryIO:
        try:
            return cast(BinaryIO, open(self._require_path(), mode))
        except OSError as e:
            raise StagingError(
                self.path, "open", context={"mode": mode, "os_error": str(e)}
            ) from e

    def read_bytes(self) -> bytes:
        """Reopens the staging file and reads its entire content."""
        try:
            with open(self._require_path(), "rb") as staged:
                return staged.read()
        except OSError as e:
            raise StagingError(self.path, "read", context={"os_error": str(e)}) from e

    def _require_path(self) -> str:
        if self.path is None:
            raise StagingError(None, "open", context={"reason": "not allocated"})
        return self.path

    def _remove(self, raise_errors: bool) -> None:
        if self.path is None:
            return
        try:
            os.remove(self.path)
            logger.debug("Staging file removed", extra={"path": self.path})
        except FileNotFoundError:
            pass
        except OSError as e:
            if raise_errors:
                raise StagingError(
                    self.path, "delete", context={"os_error": str(e)}
                ) from e
            logger.warning(
                f"Could not remove staging file after an earlier failure: {e}",
                extra={"path": self.path},
            )


# --- Pipelines ---
class ArchivePipeline(ABC):
    """
    Shared skeleton of both strategies. Subclasses decide where the archive is
    built (`_run`) and how one object's bytes reach its entry (`_write_object`).
    """

    archive_name: str = ARCHIVE_NAME
    mode: str = "streaming"

    def __init__(
        self,
        s3_client: S3Client,
        monitor: ResourceMonitor,
        copy_chunk_size: int = DEFAULT_COPY_CHUNK_SIZE,
    ):
        self._client = s3_client
        self._monitor = monitor
        self._copy_chunk_size = copy_chunk_size
        self.state = PipelineState.IDLE

    def run(self, bucket: str) -> ArchiveSummary:
        """
        Aggregates every object of *bucket* into `archive_name` in the same
        bucket. The first failure aborts the run and is re-raised.
        """
        self.state = PipelineState.IDLE
        logger.info(
            "Starting archive run",
            extra={"bucket": bucket, "archive": self.archive_name, "mode": self.mode},
        )
        try:
            summary = self._run(bucket)
        except Exception:
            self._transition(PipelineState.FAILED)
            raise
        self._transition(PipelineState.DONE)
        logger.info(
            "Archive run completed",
            extra={
                "bucket": bucket,
                "archive": self.archive_name,
                "entries": summary.entry_count,
                "bytes_read": summary.bytes_read,
                "archive_size": summary.archive_size,
            },
        )
        return summary

    @abstractmethod
    def _run(self, bucket: str) -> ArchiveSummary:
        """Builds and publishes the archive; returns the run summary."""

    @abstractmethod
    def _write_object(
        self,
        archive: ArchiveWriter,
        bucket: str,
        header: ArchiveEntryHeader,
        stream: BinaryIO,
    ) -> int:
        """Copies one object into *archive*; returns the bytes read."""

    def _add_objects(self, archive: ArchiveWriter, bucket: str) -> int:
        """Adds every listed object to *archive*; returns the bytes read."""
        bytes_read = 0
        self._transition(PipelineState.ENUMERATING)
        for descriptor in self._client.iter_objects(bucket, exclude=ARCHIVE_NAMES):
            bytes_read += self._process_object(archive, bucket, descriptor)
            self._monitor.snapshot(descriptor.name)
            self._transition(PipelineState.ENUMERATING)
        self._transition(PipelineState.FINALIZING)
        archive.finalize()
        return bytes_read

    def _process_object(
        self, archive: ArchiveWriter, bucket: str, descriptor: ObjectDescriptor
    ) -> int:
        self._transition(PipelineState.OPENING)
        stream = self._client.open_object_stream(bucket, descriptor.name)
        with closing(stream):
            # The header comes from a fresh HeadObject, not from the listing.
            attributes = self._client.get_object_attributes(bucket, descriptor.name)
            if attributes.size != descriptor.size:
                logger.debug(
                    "Object size changed since listing",
                    extra={
                        "key": descriptor.name,
                        "listed_size": descriptor.size,
                        "current_size": attributes.size,
                    },
                )
            header = ArchiveEntryHeader.from_attributes(descriptor.name, attributes)
            self._transition(PipelineState.COPYING)
            bytes_read = self._write_object(archive, bucket, header, stream)
            self._transition(PipelineState.CLOSING)
        return bytes_read

    def _transition(self, state: PipelineState) -> None:
        logger.debug(
            "Pipeline state change",
            extra={"from_state": self.state.value, "to_state": state.value},
        )
        self.state = state


class StreamingArchivePipeline(ArchivePipeline):
    """Memory-saving strategy: stream objects into a streamed archive."""

    archive_name = ARCHIVE_NAME
    mode = "streaming"

    def _run(self, bucket: str) -> ArchiveSummary:
        self._monitor.emit_header()
        # The writer publishes on clean exit and aborts the upload otherwise.
        with self._client.open_writer(bucket, self.archive_name) as sink:
            with ArchiveWriter(cast(BinaryIO, sink), self.archive_name) as archive:
                bytes_read = self._add_objects(archive, bucket)
        self._monitor.snapshot(self.archive_name)
        return ArchiveSummary(
            archive_name=self.archive_name,
            bucket=bucket,
            mode="streaming",
            entry_names=archive.entry_names,
            bytes_read=bytes_read,
            archive_size=sink.bytes_written,
        )

    def _write_object(
        self,
        archive: ArchiveWriter,
        bucket: str,
        header: ArchiveEntryHeader,
        stream: BinaryIO,
    ) -> int:
        copied = 0
        with archive.open_entry(header) as entry:
            for chunk in iter(
                lambda: _read_object(stream, bucket, header.name, self._copy_chunk_size),
                b"",
            ):
                entry.write(chunk)
                copied += len(chunk)
        return copied


class BufferedArchivePipeline(ArchivePipeline):
    """Memory-wasting strategy: whole objects in RAM, archive staged on disk."""

    archive_name = WASTE_ARCHIVE_NAME
    mode = "buffered"

    def __init__(
        self,
        s3_client: S3Client,
        monitor: ResourceMonitor,
        copy_chunk_size: int = DEFAULT_COPY_CHUNK_SIZE,
        staging_dir: str | None = None,
    ):
        super().__init__(s3_client, monitor, copy_chunk_size)
        self._staging_dir = staging_dir

    def _run(self, bucket: str) -> ArchiveSummary:
        self._monitor.emit_header()
        with StagingFile(self.archive_name, self._staging_dir) as staging:
            with staging.open("wb") as staged:
                with ArchiveWriter(staged, self.archive_name) as archive:
                    bytes_read = self._add_objects(archive, bucket)

            # Second full copy of the archive, on top of the staged one.
            data = staging.read_bytes()
            self._monitor.snapshot(self.archive_name)

            with self._client.open_writer(bucket, self.archive_name) as sink:
                sink.write(data)

        return ArchiveSummary(
            archive_name=self.archive_name,
            bucket=bucket,
            mode="buffered",
            entry_names=archive.entry_names,
            bytes_read=bytes_read,
            archive_size=len(data),
        )

    def _write_object(
        self,
        archive: ArchiveWriter,
        bucket: str,
        header: ArchiveEntryHeader,
        stream: BinaryIO,
    ) -> int:
        data = _read_object(stream, bucket, header.name)
        archive.write_entry(header, data)
        return len(data)


# --- High-Level Orchestrator ---
def select_pipeline(
    waste: bool,
    s3_client: S3Client,
    monitor: ResourceMonitor,
    config: AppConfig,
) -> ArchivePipeline:
    """Picks the buffered strategy when *waste* is set, streaming otherwise."""
    if waste:
        return BufferedArchivePipeline(
            s3_client,
            monitor,
            copy_chunk_size=config.copy_chunk_size_bytes,
            staging_dir=config.staging_dir,
        )
    return StreamingArchivePipeline(
        s3_client, monitor, copy_chunk_size=config.copy_chunk_size_bytes
    )


def run_archive_job(
    waste: bool,
    config: AppConfig,
    s3_client: S3Client | None = None,
    monitor: ResourceMonitor | None = None,
) -> ArchiveSummary:
    """
    Builds the collaborators a run needs (unless given) and aggregates
    `config.bucket_name` with the selected strategy.
    """
    if s3_client is None:
        s3_client = S3Client(
            build_s3_client(config), upload_part_size=config.upload_part_size_bytes
        )
    if monitor is None:
        monitor = ResourceMonitor(trace_allocations=config.trace_allocations)

    logger.info("Run by waste memory." if waste else "Run by memory saving.")
    pipeline = select_pipeline(waste, s3_client, monitor, config)
    try:
        return pipeline.run(config.bucket_name)
    finally:
        monitor.stop()
