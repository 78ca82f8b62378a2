from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

"""Logging initialization with labeled, upload-tagged prefixes.

Every line the CLI prints starts with one of INFO|WARN|ERROR|SUMMARY so operators can
grep a run's outcome. Lines emitted on behalf of one upload also carry a
``[<kind>:<source>]`` tag right after the label, so interleaved runs stay separable:

    WARN [kit:kits.xlsx] not_found=1 rejected=0 failed_writes=0
    SUMMARY [kit:kits.xlsx] kind=kit rows=4 updated=3 ...

Standard logging only; services log through child loggers of "roster_recon"
(logging.getLogger(__name__)) and inherit this handler.
"""

__all__ = [
    "setup_logging",
    "get_logger",
    "log_summary",
    "upload_logger",
    "upload_tag",
    "UploadLogAdapter",
    "LOGGER_NAME",
    "SUMMARY_LEVEL",
]

LOGGER_NAME = "roster_recon"

# Custom SUMMARY level (between INFO=20 and WARNING=30)
SUMMARY_LEVEL = 25

_logger: logging.Logger | None = None


def upload_tag(kind: str, source: str) -> str:
    return f"{kind}:{source}"


class LabeledFormatter(logging.Formatter):
    """Formatter rendering ``LABEL message`` or ``LABEL [upload] message``."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        level_label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        upload = getattr(record, "upload", None)
        if upload:
            return f"{level_label} [{upload}] {record.getMessage()}"
        return f"{level_label} {record.getMessage()}"


class UploadLogAdapter(logging.LoggerAdapter):
    """Stamps every record with the upload it belongs to (``record.upload``)."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs.setdefault("extra", {})["upload"] = self.extra["upload"]
        return msg, kwargs


def upload_logger(logger: logging.Logger, kind: str, source: str) -> UploadLogAdapter:
    """Wrap ``logger`` so its lines are tagged ``[kind:source]``."""
    return UploadLogAdapter(logger, {"upload": upload_tag(kind, source)})


def setup_logging() -> logging.Logger:
    """Configure the application logger (idempotent).

    Returns:
        The "roster_recon" logger writing labeled lines to stdout
    """
    global _logger

    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)

    # Prevent propagation to root logger to avoid duplicate output
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    if _logger is None:
        return setup_logging()
    return _logger


def log_summary(message: str, *, kind: str | None = None, source: str | None = None) -> None:
    """Log a message at SUMMARY level, tagged with its upload when kind and source are given."""
    if kind is not None and source is not None:
        upload_logger(get_logger(), kind, source).log(SUMMARY_LEVEL, message)
    else:
        get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    _logger = None
