# tests/unit/test_exceptions.py

import json

import pytest

from zip_aggregator.exceptions import (
    ArchiveWriteError,
    ConfigurationError,
    DestinationWriteError,
    EnumerationError,
    MetadataError,
    ObjectReadError,
    StagingError,
    StorageError,
    ZipAggregatorError,
    get_error_context,
)


class TestZipAggregatorError:
    """Test the base ZipAggregatorError class."""

    def test_basic_initialization(self):
        error = ZipAggregatorError("Test message")
        assert str(error) == "Test message"
        assert error.message == "Test message"
        assert error.error_code == "ZipAggregatorError"
        assert error.context == {}
        assert error.correlation_id is None

    def test_full_initialization(self):
        context = {"key": "value"}
        error = ZipAggregatorError(
            "Test message",
            error_code="CUSTOM_CODE",
            context=context,
            correlation_id="test-123",
        )
        assert error.error_code == "CUSTOM_CODE"
        assert error.context == context
        assert error.correlation_id == "test-123"

    def test_context_is_copied(self):
        """Mutating the caller's dict must not change the error."""
        context = {"key": "value"}
        error = ZipAggregatorError("Test message", context=context)
        context["key"] = "changed"
        assert error.context["key"] == "value"

    def test_to_dict(self):
        error = ZipAggregatorError(
            "Test message",
            error_code="TEST_CODE",
            context={"key": "value"},
            correlation_id="test-123",
        )
        assert error.to_dict() == {
            "error_type": "ZipAggregatorError",
            "error_code": "TEST_CODE",
            "message": "Test message",
            "context": {"key": "value"},
            "correlation_id": "test-123",
        }


class TestStorageErrors:
    """Test object store error classes."""

    def test_enumeration_error(self):
        error = EnumerationError("sample-bucket", 3)
        assert "sample-bucket" in str(error)
        assert "after 3 object(s)" in str(error)
        assert error.error_code == "ENUMERATION_FAILED"
        assert error.context == {"bucket": "sample-bucket", "objects_listed": 3}
        assert isinstance(error, StorageError)

    def test_object_read_error(self):
        error = ObjectReadError("b", "a.txt", operation="read", reason="not_found")
        assert "s3://b/a.txt" in str(error)
        assert error.error_code == "OBJECT_READ_FAILED"
        assert error.context["operation"] == "read"
        assert error.context["reason"] == "not_found"
        assert isinstance(error, StorageError)

    def test_metadata_error(self):
        error = MetadataError("b", "a.txt")
        assert "Attributes unavailable" in str(error)
        assert error.error_code == "METADATA_UNAVAILABLE"
        assert error.context == {"bucket": "b", "key": "a.txt"}

    def test_destination_write_error(self):
        error = DestinationWriteError("b", "all.zip", operation="put_object")
        assert "put_object" in str(error)
        assert error.error_code == "DESTINATION_WRITE_FAILED"
        assert error.context["key"] == "all.zip"

    def test_extra_context_is_merged_but_defaults_win(self):
        error = ObjectReadError(
            "b",
            "a.txt",
            context={"aws_error_code": "NoSuchKey", "key": "overridden?"},
        )
        assert error.context["aws_error_code"] == "NoSuchKey"
        assert error.context["key"] == "a.txt"


class TestLocalErrors:
    """Test archive, staging and configuration error classes."""

    def test_archive_write_error(self):
        error = ArchiveWriteError("entry name is empty", entry_name="")
        assert "Archive write failed" in str(error)
        assert error.error_code == "ARCHIVE_WRITE_FAILED"
        assert error.context["reason"] == "entry name is empty"
        assert not isinstance(error, StorageError)

    def test_staging_error(self):
        error = StagingError("/tmp/all-waste.zip123", "delete")
        assert "delete" in str(error)
        assert error.error_code == "STAGING_FAILED"
        assert error.context["path"] == "/tmp/all-waste.zip123"

    def test_staging_error_without_path(self):
        error = StagingError(None, "create")
        assert "<unallocated>" in str(error)

    def test_configuration_error(self):
        error = ConfigurationError("Missing variable")
        assert str(error) == "Missing variable"
        assert error.error_code == "CONFIGURATION_ERROR"


@pytest.mark.parametrize(
    "error",
    [
        EnumerationError("b", 1),
        ObjectReadError("b", "k"),
        MetadataError("b", "k"),
        DestinationWriteError("b", "k"),
        ArchiveWriteError("reason"),
        StagingError("/tmp/x", "read"),
        ConfigurationError("bad"),
    ],
)
def test_every_error_is_a_zip_aggregator_error(error):
    assert isinstance(error, ZipAggregatorError)
    # Structured context must be loggable as JSON.
    json.dumps(error.to_dict())


def test_get_error_context_for_our_errors():
    error = MetadataError("b", "k")
    assert get_error_context(error) == error.to_dict()


def test_get_error_context_for_foreign_errors():
    assert get_error_context(ValueError("nope")) == {
        "error_type": "ValueError",
        "message": "nope",
    }
