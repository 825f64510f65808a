"""Centralized logging configuration for the Mentora media service."""

from __future__ import annotations

import logging
from logging import Logger
from pathlib import Path
from typing import Iterable, List


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "mentora.log"

# Third-party loggers that emit per-part or per-chunk debug output during uploads.
_CHATTY_LOGGERS = ("multipart", "python_multipart", "mutagen")


def configure_logging(level: int = logging.INFO, *, handlers: Iterable[logging.Handler] | None = None) -> Logger:
    """Configure the root logger and quieten upload-parsing libraries."""

    logger = logging.getLogger()
    logger.setLevel(level)

    if handlers is None:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        logger.addHandler(stream_handler)
    else:
        for handler in handlers:
            logger.addHandler(handler)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logger


def get_log_file_path(uploads_root: Path) -> Path:
    """Return the default path for the service log file."""

    return uploads_root / LOG_FILE_NAME


def build_log_handlers(uploads_root: Path) -> List[logging.Handler]:
    """Return a file handler under *uploads_root* plus a stderr handler."""

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(get_log_file_path(uploads_root), encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    return [file_handler, stream_handler]


__all__ = [
    "DEFAULT_LOG_FORMAT",
    "build_log_handlers",
    "configure_logging",
    "get_log_file_path",
]
