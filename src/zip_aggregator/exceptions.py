# src/zip_aggregator/exceptions.py

"""
Shared custom exceptions for the ZIP aggregator.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- ZipAggregatorError (base)
  - StorageError (object store failures)
    - EnumerationError
    - ObjectReadError
    - MetadataError
    - DestinationWriteError
  - ArchiveWriteError
  - StagingError
  - ConfigurationError

None of these are retried: the first error aborts the run and is reported
to the operator.
"""

from typing import Any, Dict, Optional


class ZipAggregatorError(Exception):
    """Base exception for all ZIP aggregator errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}  # Copy context to prevent mutation
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
        }


def _merge_context(kwargs: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    # Caller-supplied context first, then our defaults (which win on conflict).
    context: Dict[str, Any] = {}
    if "context" in kwargs:
        context.update(kwargs.pop("context") or {})
    context.update(defaults)
    return context


# === Object Store Errors ===


class StorageError(ZipAggregatorError):
    """Base class for object store errors."""

    pass


class EnumerationError(StorageError):
    """Raised when listing a bucket fails part-way through."""

    def __init__(self, bucket: str, objects_listed: int = 0, **kwargs):
        message = (
            f"Listing objects in bucket '{bucket}' failed "
            f"after {objects_listed} object(s)"
        )
        context = _merge_context(
            kwargs, {"bucket": bucket, "objects_listed": objects_listed}
        )
        super().__init__(
            message, error_code="ENUMERATION_FAILED", context=context, **kwargs
        )


class ObjectReadError(StorageError):
    """Raised when a listed object cannot be opened or fully read."""

    def __init__(
        self,
        bucket: str,
        key: str,
        operation: str = "open",
        reason: str = "unreadable",
        **kwargs,
    ):
        message = f"Cannot {operation} object s3://{bucket}/{key}: {reason}"
        context = _merge_context(
            kwargs,
            {"bucket": bucket, "key": key, "operation": operation, "reason": reason},
        )
        super().__init__(
            message, error_code="OBJECT_READ_FAILED", context=context, **kwargs
        )


class MetadataError(StorageError):
    """Raised when attributes are unavailable for a listed object."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Attributes unavailable for object s3://{bucket}/{key}"
        context = _merge_context(kwargs, {"bucket": bucket, "key": key})
        super().__init__(
            message, error_code="METADATA_UNAVAILABLE", context=context, **kwargs
        )


class DestinationWriteError(StorageError):
    """Raised when the final archive cannot be persisted."""

    def __init__(self, bucket: str, key: str, operation: str = "write", **kwargs):
        message = f"Failed to {operation} destination object s3://{bucket}/{key}"
        context = _merge_context(
            kwargs, {"bucket": bucket, "key": key, "operation": operation}
        )
        super().__init__(
            message, error_code="DESTINATION_WRITE_FAILED", context=context, **kwargs
        )


# === Archive & Local Storage Errors ===


class ArchiveWriteError(ZipAggregatorError):
    """Raised when an entry cannot be opened or the central directory cannot be written."""

    def __init__(self, reason: str, entry_name: Optional[str] = None, **kwargs):
        message = f"Archive write failed: {reason}"
        context = _merge_context(kwargs, {"reason": reason, "entry_name": entry_name})
        super().__init__(
            message, error_code="ARCHIVE_WRITE_FAILED", context=context, **kwargs
        )


class StagingError(ZipAggregatorError):
    """Raised when the local staging file cannot be created, read or removed."""

    def __init__(self, path: Optional[str], operation: str, **kwargs):
        message = f"Staging file {operation} failed: {path or '<unallocated>'}"
        context = _merge_context(kwargs, {"path": path, "operation": operation})
        super().__init__(message, error_code="STAGING_FAILED", context=context, **kwargs)


# === Configuration Errors ===


class ConfigurationError(ZipAggregatorError):
    """Raised when there's an error in the application configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


# === Utility Functions ===


def get_error_context(error: BaseException) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, ZipAggregatorError):
        return error.to_dict()
    return {
        "error_type": error.__class__.__name__,
        "message": str(error),
    }
