# src/zip_aggregator/archive.py

"""
Archive writer adapter.

Wraps a byte sink in a ZIP writer that produces one deflate-compressed entry
per source object. The container is append-only: entries are written in the
order they are opened and the central directory is written exactly once, by
`finalize()`. Used as a context manager the writer always finalizes on exit,
so an archive is terminated even when the pipeline fails part-way.
"""

import logging
import zipfile
import zlib
from contextlib import contextmanager
from typing import IO, BinaryIO, Iterator

from .exceptions import ArchiveWriteError, ZipAggregatorError
from .schemas import ArchiveEntryHeader

logger = logging.getLogger(__name__)

_ZIP_ERRORS = (ValueError, RuntimeError, OSError, zlib.error)


class ArchiveWriter:
    """ZIP writer over an arbitrary (possibly non-seekable) byte sink."""

    def __init__(self, sink: BinaryIO, archive_name: str = ""):
        self.archive_name = archive_name
        self.entry_names: list[str] = []
        self.finalized = False
        self._zip = zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED)

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.finalized:
            return False
        if exc_type is None:
            self.finalize()
            return False
        # Terminate the container anyway, but never mask the original error.
        try:
            self.finalize()
        except ZipAggregatorError as e:
            logger.warning(
                f"Could not finalize archive after an earlier failure: {e}",
                extra={"archive": self.archive_name},
            )
        return False

    @contextmanager
    def open_entry(self, header: ArchiveEntryHeader) -> Iterator[IO[bytes]]:
        """
        Begins a new entry and yields a writable handle for its content.
        The entry is closed when the block exits.
        """
        self._check_writable(header)
        try:
            entry = self._zip.open(header.to_zipinfo(), mode="w")
        except _ZIP_ERRORS as e:
            raise ArchiveWriteError(
                f"cannot open entry: {e}",
                entry_name=header.name,
                context={"archive": self.archive_name},
            ) from e

        try:
            with entry:
                yield entry
        except _ZIP_ERRORS as e:
            raise ArchiveWriteError(
                f"cannot write entry: {e}",
                entry_name=header.name,
                context={"archive": self.archive_name},
            ) from e
        self.entry_names.append(header.name)

    def write_entry(self, header: ArchiveEntryHeader, data: bytes) -> None:
        """Writes a complete entry in a single operation."""
        self._check_writable(header)
        try:
            self._zip.writestr(header.to_zipinfo(), data)
        except _ZIP_ERRORS as e:
            raise ArchiveWriteError(
                f"cannot write entry: {e}",
                entry_name=header.name,
                context={"archive": self.archive_name},
            ) from e
        self.entry_names.append(header.name)

    def finalize(self) -> None:
        """Writes the central directory. May only be called once."""
        if self.finalized:
            raise ArchiveWriteError(
                "archive is already finalized",
                context={"archive": self.archive_name},
            )
        self.finalized = True
        try:
            self._zip.close()
        except _ZIP_ERRORS as e:
            raise ArchiveWriteError(
                f"cannot write central directory: {e}",
                context={"archive": self.archive_name},
            ) from e
        logger.debug(
            "Archive finalized",
            extra={"archive": self.archive_name, "entries": len(self.entry_names)},
        )

    def _check_writable(self, header: ArchiveEntryHeader) -> None:
        if self.finalized:
            raise ArchiveWriteError(
                "archive is already finalized",
                entry_name=header.name,
                context={"archive": self.archive_name},
            )
        if not header.name:
            raise ArchiveWriteError(
                "entry name is empty", context={"archive": self.archive_name}
            )
