# In src/zip_aggregator/schemas.py

import stat
import struct
import zipfile
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# ZIP timestamps are DOS dates; these are the representable bounds.
_ZIP_MIN_DATE_TIME = (1980, 1, 1, 0, 0, 0)
_ZIP_MAX_DATE_TIME = (2107, 12, 31, 23, 59, 58)

_EXTENDED_TIMESTAMP_TAG = 0x5455
_UNIX_CREATE_SYSTEM = 3


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _zip_date_time(value: datetime) -> tuple[int, int, int, int, int, int]:
    utc = _as_utc(value)
    if utc.year < _ZIP_MIN_DATE_TIME[0]:
        return _ZIP_MIN_DATE_TIME
    if utc.year > _ZIP_MAX_DATE_TIME[0]:
        return _ZIP_MAX_DATE_TIME
    return (utc.year, utc.month, utc.day, utc.hour, utc.minute, utc.second)


def _extended_timestamp(value: datetime) -> bytes:
    """Info-ZIP extended timestamp extra field (mtime only), if it fits."""
    seconds = int(_as_utc(value).timestamp())
    if not 0 <= seconds < 2**32:
        return b""
    return struct.pack("<HHBL", _EXTENDED_TIMESTAMP_TAG, 5, 0x01, seconds)


# --- Object Store Models ---


class ObjectDescriptor(BaseModel):
    """
    One step of a bucket listing. Validated straight from a `Contents`
    item of an S3 ListObjectsV2 page.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, alias="Key")
    size: int = Field(..., ge=0, alias="Size")
    last_modified: datetime = Field(..., alias="LastModified")


class ObjectAttributes(BaseModel):
    """Authoritative object metadata, as returned by HeadObject."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    size: int = Field(..., ge=0, alias="ContentLength")
    modified_time: datetime = Field(..., alias="LastModified")


# --- Archive Models ---


class ArchiveEntryHeader(BaseModel):
    """
    Header of a single archive entry, derived 1:1 from the attributes of the
    object it holds.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    uncompressed_size: int = Field(..., ge=0)
    modified_time: datetime
    compression_method: int = zipfile.ZIP_DEFLATED
    permission_bits: int = 0o755

    @classmethod
    def from_attributes(
        cls, name: str, attributes: ObjectAttributes
    ) -> "ArchiveEntryHeader":
        return cls(
            name=name,
            uncompressed_size=attributes.size,
            modified_time=attributes.modified_time,
        )

    def to_zipinfo(self) -> zipfile.ZipInfo:
        """
        Renders the header as a ZipInfo. `file_size` is only the announced
        size: zipfile replaces it with the number of bytes actually written
        when the entry is closed.
        """
        info = zipfile.ZipInfo(self.name, date_time=_zip_date_time(self.modified_time))
        info.compress_type = self.compression_method
        info.file_size = self.uncompressed_size
        info.create_system = _UNIX_CREATE_SYSTEM
        info.external_attr = (stat.S_IFREG | self.permission_bits) << 16
        info.extra = _extended_timestamp(self.modified_time)
        return info


class ArchiveSummary(BaseModel):
    """Result of one pipeline run."""

    archive_name: str
    bucket: str
    mode: Literal["streaming", "buffered"]
    entry_names: list[str] = Field(default_factory=list)
    bytes_read: int = 0
    archive_size: int = 0

    @property
    def entry_count(self) -> int:
        return len(self.entry_names)


# --- Resource Accounting ---


class ResourceSample(BaseModel):
    """Process memory counters captured at one checkpoint."""

    label: str
    allocated_bytes: int
    heap_allocated_bytes: int
    cumulative_allocated_bytes: int
    live_heap_objects: int
    system_reserved_bytes: int
    gc_cycle_count: int

    def to_row(self) -> str:
        """Comma-separated line; every counter in KiB except the GC count."""
        fields = [
            self.label,
            str(self.allocated_bytes // 1024),
            str(self.heap_allocated_bytes // 1024),
            str(self.cumulative_allocated_bytes // 1024),
            str(self.live_heap_objects // 1024),
            str(self.system_reserved_bytes // 1024),
            str(self.gc_cycle_count),
        ]
        return ",".join(fields)
