#!/usr/bin/env python

# src/zip_aggregator/cli.py

"""
Command-line entry point.

    zip-aggregator            # memory saving: stream into all.zip
    zip-aggregator --waste    # memory wasting: buffer into all-waste.zip

Resource samples are printed to stdout as CSV; logs and the final status line
go to stderr. Everything else (bucket, endpoint, tuning) comes from the
environment, see `config.py`.
"""

import argparse
import sys
from typing import Sequence

from rich.console import Console

from .config import get_config
from .core import run_archive_job
from .exceptions import ConfigurationError, ZipAggregatorError, get_error_context
from .logging_utils import configure_logging

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zip-aggregator",
        description="Aggregate every object of a bucket into a single ZIP archive.",
    )
    parser.add_argument(
        "-w",
        "--waste",
        action="store_true",
        help="Run by waste memory (buffer objects and stage the archive locally).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console(stderr=True)

    try:
        config = get_config()
    except ConfigurationError as e:
        console.print(f"[bold red]❌ Configuration error[/bold red]: {e.message}")
        return EXIT_CONFIG_ERROR

    logger = configure_logging(config)

    try:
        summary = run_archive_job(args.waste, config)
    except ZipAggregatorError as e:
        logger.error(f"Archive run failed: {e}", extra={"error": get_error_context(e)})
        console.print(f"[bold red]❌ Archive run failed[/bold red]: {e.message}")
        return EXIT_RUN_FAILED

    console.print(
        f"[green]✓[/green] Wrote s3://{summary.bucket}/{summary.archive_name} "
        f"({summary.entry_count} entries, {summary.archive_size} bytes)"
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
