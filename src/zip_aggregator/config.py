import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes", "on")

# S3 rejects multipart parts smaller than this (except the last one).
MIN_UPLOAD_PART_SIZE_MB = 5


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    # --- Object Store ---
    bucket_name: str
    endpoint_url: str | None
    region: str
    anonymous_access: bool
    s3_operation_timeout_seconds: int

    # --- Logging ---
    service_name: str
    log_level: str

    # --- Pipeline Tuning ---
    copy_chunk_size_kb: int
    upload_part_size_mb: int
    staging_dir: str | None
    trace_allocations: bool

    # --- Derived Properties ---
    @property
    def copy_chunk_size_bytes(self) -> int:
        return self.copy_chunk_size_kb * 1024

    @property
    def upload_part_size_bytes(self) -> int:
        return self.upload_part_size_mb * 1_048_576

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            bucket_name = os.getenv("BUCKET_NAME", "sample-bucket").strip()
            if not bucket_name:
                raise ValueError("BUCKET_NAME must not be empty.")

            endpoint_url = os.getenv("S3_ENDPOINT_URL") or None
            region = os.getenv("AWS_REGION", "us-east-1")
            anonymous_access = (
                os.getenv("S3_ANONYMOUS_ACCESS", "false").lower() in _TRUTHY
            )

            s3_operation_timeout_seconds = int(
                os.getenv("S3_OPERATION_TIMEOUT_SECONDS", "30")
            )
            if s3_operation_timeout_seconds <= 0:
                raise ValueError(
                    "S3_OPERATION_TIMEOUT_SECONDS must be a positive integer."
                )

            service_name = os.getenv("SERVICE_NAME", "zip-aggregator")

            # --- Handle special-case variables like log level ---
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

            copy_chunk_size_kb = int(os.getenv("COPY_CHUNK_SIZE_KB", "32"))
            if copy_chunk_size_kb <= 0:
                raise ValueError("COPY_CHUNK_SIZE_KB must be a positive integer.")

            upload_part_size_mb = int(os.getenv("UPLOAD_PART_SIZE_MB", "8"))
            if upload_part_size_mb < MIN_UPLOAD_PART_SIZE_MB:
                raise ValueError(
                    f"UPLOAD_PART_SIZE_MB must be at least {MIN_UPLOAD_PART_SIZE_MB}."
                )

            staging_dir = os.getenv("STAGING_DIR") or None
            if staging_dir is not None and not os.path.isdir(staging_dir):
                raise ValueError(f"STAGING_DIR '{staging_dir}' is not a directory.")

            trace_allocations = (
                os.getenv("TRACE_ALLOCATIONS", "true").lower() in _TRUTHY
            )

        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            bucket_name=bucket_name,
            endpoint_url=endpoint_url,
            region=region,
            anonymous_access=anonymous_access,
            s3_operation_timeout_seconds=s3_operation_timeout_seconds,
            service_name=service_name,
            log_level=log_level,
            copy_chunk_size_kb=copy_chunk_size_kb,
            upload_part_size_mb=upload_part_size_mb,
            staging_dir=staging_dir,
            trace_allocations=trace_allocations,
        )


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the application configuration from environment variables.
    The result is cached, so the environment is only read once on the
    first call.
    """
    logger.info("Loading application configuration from environment...")
    return AppConfig.load_from_env()
