"""Shared logging format and configuration for the web app and the video worker."""

import logging
import os
import time

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%SZ"

# AWS SDK and HTTP client loggers are chatty at INFO
QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")


def configure_logging(level: int | str | None = None) -> None:
    """
    Configure the root logger once at process startup.

    level defaults to LOG_LEVEL from the environment (INFO when unset). Timestamps are UTC.
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    formatter.converter = time.gmtime
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[handler])
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
