"""
The Lambda adapter for the ZIP aggregator.

Exposes the same single switch as the CLI as an event field:

    {"waste": true}   -> buffered strategy, writes all-waste.zip
    {} / {"waste": false} -> streaming strategy, writes all.zip

The handler returns the run summary; failures are logged with their
structured context and re-raised so the invocation is marked as failed.
"""

from typing import Any

from aws_lambda_powertools.utilities.typing import LambdaContext

from .config import get_config
from .core import run_archive_job
from .exceptions import ZipAggregatorError, get_error_context
from .logging_utils import configure_logging

# --- Global & Reusable Components ---
CONFIG = get_config()

logger = configure_logging(CONFIG)


@logger.inject_lambda_context()
def handler(event: dict, context: LambdaContext) -> dict[str, Any]:
    """Main Lambda handler: aggregates the configured bucket once."""
    waste = bool(event.get("waste", False))
    logger.info(
        "Archive job requested",
        extra={"waste": waste, "bucket": CONFIG.bucket_name},
    )

    try:
        summary = run_archive_job(waste, CONFIG)
    except ZipAggregatorError as e:
        logger.error(
            f"Archive job failed: {e}", extra={"error": get_error_context(e)}
        )
        raise

    return summary.model_dump()
