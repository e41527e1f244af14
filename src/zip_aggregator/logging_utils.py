import logging
import sys
from typing import IO

from aws_lambda_powertools import Logger
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers

from .config import AppConfig

PACKAGE_LOGGER = "zip_aggregator"


class _StderrHandler(logging.StreamHandler):
    """StreamHandler bound to whatever `sys.stderr` is when a record is emitted."""

    def __init__(self):
        super().__init__()

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass


def configure_logging(config: AppConfig, stream: IO[str] | None = None) -> Logger:
    """
    Creates the service Logger and hands its JSON formatter, handler and level
    to the package's module loggers. Records go to *stream*, or to stderr when
    it is None; stdout is reserved for the resource CSV.
    """
    handler = logging.StreamHandler(stream) if stream is not None else _StderrHandler()
    logger = Logger(
        service=config.service_name,
        level=config.log_level,
        logger_handler=handler,
    )
    # Module loggers are created at import time, so they are registered by now.
    logging.getLogger(PACKAGE_LOGGER)
    copy_config_to_registered_loggers(source_logger=logger, include={PACKAGE_LOGGER})
    return logger
