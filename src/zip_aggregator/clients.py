# src/zip_aggregator/clients.py

"""
Client wrappers for the object store (S3 or an S3-compatible emulator).

`S3Client` is the only place that talks boto3. It exposes the three read
operations the pipelines consume (list, open, stat) and a streaming writer
for the destination object, and it translates botocore errors into the
exceptions defined in `exceptions.py`.
"""

import logging
from typing import TYPE_CHECKING, Any, BinaryIO, Collection, Iterator, cast

import boto3
import pydantic
from botocore import UNSIGNED
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import AppConfig
from .exceptions import (
    DestinationWriteError,
    EnumerationError,
    MetadataError,
    ObjectReadError,
)
from .schemas import ObjectAttributes, ObjectDescriptor

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client as S3ClientType

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_PART_SIZE = 8 * 1_048_576

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
_ACCESS_DENIED_CODES = {"AccessDenied", "Forbidden", "403"}


def _error_details(error: Exception) -> dict[str, Any]:
    """Context fields describing a botocore failure."""
    if isinstance(error, ClientError):
        return {
            "aws_error_code": error.response.get("Error", {}).get("Code", "Unknown"),
            "aws_error_message": error.response.get("Error", {}).get("Message", ""),
        }
    return {"transport_error": str(error)}


def build_s3_client(config: AppConfig) -> "S3ClientType":
    """Creates the boto3 S3 client described by *config*."""
    botocore_config = BotoConfig(
        connect_timeout=config.s3_operation_timeout_seconds,
        read_timeout=config.s3_operation_timeout_seconds,
        signature_version=UNSIGNED if config.anonymous_access else None,
        # Emulators generally don't resolve virtual-hosted bucket names.
        s3={"addressing_style": "path"} if config.endpoint_url else None,
    )
    logger.debug(
        "Creating S3 client",
        extra={
            "endpoint_url": config.endpoint_url,
            "region": config.region,
            "anonymous_access": config.anonymous_access,
        },
    )
    return boto3.client(
        "s3",
        endpoint_url=config.endpoint_url,
        region_name=config.region,
        config=botocore_config,
    )


class S3ObjectWriter:
    """
    Write-only byte sink that becomes an S3 object when closed.

    Data is held until a full part has accumulated and then shipped as one
    part of a multipart upload, so at most one part is buffered at a time.
    A payload that never fills a part is published with a single PutObject.
    The sink is not seekable; `tell()` reports the bytes written so far.
    """

    def __init__(
        self,
        s3_client: "S3ClientType",
        bucket: str,
        key: str,
        part_size: int = DEFAULT_UPLOAD_PART_SIZE,
    ):
        self._client = s3_client
        self.bucket = bucket
        self.key = key
        self._part_size = part_size
        self._buffer = bytearray()
        self._position = 0
        self._upload_id: str | None = None
        self._parts: list[dict[str, Any]] = []
        self.closed = False

    @property
    def bytes_written(self) -> int:
        return self._position

    def writable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._position

    def flush(self) -> None:
        pass  # Parts are shipped as soon as they fill.

    def write(self, data: bytes) -> int:
        if self.closed:
            raise DestinationWriteError(
                self.bucket,
                self.key,
                operation="write",
                context={"reason": "writer is already closed"},
            )
        self._buffer += data
        self._position += len(data)
        while len(self._buffer) >= self._part_size:
            self._upload_part(bytes(self._buffer[: self._part_size]))
            del self._buffer[: self._part_size]
        return len(data)

    def close(self) -> None:
        """Publishes the object. Closing twice is a no-op."""
        if self.closed:
            return
        if self._upload_id is None:
            self._call("put_object", Body=bytes(self._buffer))
        else:
            if self._buffer:
                self._upload_part(bytes(self._buffer))
            self._call(
                "complete_multipart_upload",
                UploadId=self._upload_id,
                MultipartUpload={"Parts": self._parts},
            )
        self._buffer = bytearray()
        self.closed = True
        logger.debug(
            "Destination object published",
            extra={
                "bucket": self.bucket,
                "key": self.key,
                "size": self._position,
                "parts": len(self._parts),
            },
        )

    def abort(self) -> None:
        """Discards everything written so far; nothing becomes visible."""
        if self.closed:
            return
        self.closed = True
        self._buffer = bytearray()
        if self._upload_id is None:
            return
        try:
            self._client.abort_multipart_upload(
                Bucket=self.bucket, Key=self.key, UploadId=self._upload_id
            )
            logger.info(
                "Aborted multipart upload",
                extra={"bucket": self.bucket, "key": self.key},
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(
                f"Failed to abort multipart upload: {e}",
                extra={
                    "bucket": self.bucket,
                    "key": self.key,
                    "upload_id": self._upload_id,
                },
            )

    def __enter__(self) -> "S3ObjectWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.close()
        else:
            self.abort()
        return False

    # --- Internals ---

    def _upload_part(self, chunk: bytes) -> None:
        if self._upload_id is None:
            response = self._call("create_multipart_upload")
            self._upload_id = response["UploadId"]
        part_number = len(self._parts) + 1
        response = self._call(
            "upload_part",
            UploadId=self._upload_id,
            PartNumber=part_number,
            Body=chunk,
        )
        self._parts.append({"ETag": response["ETag"], "PartNumber": part_number})

    def _call(self, operation: str, **kwargs: Any) -> Any:
        try:
            return getattr(self._client, operation)(
                Bucket=self.bucket, Key=self.key, **kwargs
            )
        except (ClientError, BotoCoreError) as e:
            self.abort()
            raise DestinationWriteError(
                self.bucket, self.key, operation=operation, context=_error_details(e)
            ) from e


class S3Client:
    """
    A wrapper for the object store operations the aggregation pipelines use.
    """

    def __init__(
        self,
        s3_client: "S3ClientType",
        upload_part_size: int = DEFAULT_UPLOAD_PART_SIZE,
    ):
        """
        Initializes the S3Client.

        Args:
            s3_client: A typed boto3 S3 client.
            upload_part_size: Part size used by writers returned from `open_writer`.
        """
        self._client = s3_client
        self._upload_part_size = upload_part_size

    def iter_objects(
        self, bucket: str, exclude: Collection[str] = ()
    ) -> Iterator[ObjectDescriptor]:
        """
        Lazily lists every object in *bucket* in backend order.

        Pages are fetched on demand. The first failure raises
        EnumerationError and ends the iteration for good.
        """
        paginator = self._client.get_paginator("list_objects_v2")
        pages = iter(paginator.paginate(Bucket=bucket))
        listed = 0
        while True:
            try:
                page = next(pages)
            except StopIteration:
                return
            except (ClientError, BotoCoreError) as e:
                raise EnumerationError(
                    bucket, listed, context=_error_details(e)
                ) from e

            for item in page.get("Contents", []):
                try:
                    descriptor = ObjectDescriptor.model_validate(item)
                except pydantic.ValidationError as e:
                    raise EnumerationError(
                        bucket, listed, context={"validation_error": str(e)}
                    ) from e
                if descriptor.name in exclude:
                    logger.debug(
                        "Skipping excluded object",
                        extra={"bucket": bucket, "key": descriptor.name},
                    )
                    continue
                listed += 1
                yield descriptor

    def open_object_stream(self, bucket: str, key: str) -> BinaryIO:
        """
        Retrieves an S3 object's body as a file-like streaming object.
        Raises ObjectReadError describing why the object could not be opened.
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            details = _error_details(e)
            error_code = details["aws_error_code"]
            if error_code in _NOT_FOUND_CODES:
                reason = "not_found"
            elif error_code in _ACCESS_DENIED_CODES:
                reason = "access_denied"
            else:
                reason = "client_error"
            raise ObjectReadError(
                bucket, key, operation="open", reason=reason, context=details
            ) from e
        except BotoCoreError as e:
            raise ObjectReadError(
                bucket,
                key,
                operation="open",
                reason="transport_error",
                context=_error_details(e),
            ) from e
        return cast(BinaryIO, response["Body"])

    def get_object_attributes(self, bucket: str, key: str) -> ObjectAttributes:
        """Fetches the current size and modification time of an object."""
        try:
            response = self._client.head_object(Bucket=bucket, Key=key)
            return ObjectAttributes.model_validate(response)
        except (ClientError, BotoCoreError) as e:
            raise MetadataError(bucket, key, context=_error_details(e)) from e
        except pydantic.ValidationError as e:
            raise MetadataError(
                bucket, key, context={"validation_error": str(e)}
            ) from e

    def open_writer(self, bucket: str, key: str) -> S3ObjectWriter:
        """Returns a sink that creates (or overwrites) *key* when closed."""
        logger.info("Opening destination object", extra={"bucket": bucket, "key": key})
        return S3ObjectWriter(self._client, bucket, key, part_size=self._upload_part_size)
