"""Logging setup shared by the pipeline, CLI and API.

All modules log through named loggers obtained from :func:`get_logger`;
:func:`setup_logging` is called once by each entry point.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", stream=None) -> None:
    """Configure the root logger with the standard format.

    Calling it again after handlers exist only leaves the configuration
    untouched, so the CLI and the API server can both call it safely.

    Args:
        level: Logging level name. Unknown names fall back to ``INFO``.
        stream: Output stream, defaults to stdout.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    root.setLevel(numeric_level)

    # boto3 is very chatty at DEBUG
    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(max(root.level, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, usually ``get_logger(__name__)``."""
    return logging.getLogger(name)
