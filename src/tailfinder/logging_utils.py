"""Logging utilities for tailfinder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _has_file_handler(logger: logging.Logger, log_path: Path) -> bool:
    return any(
        isinstance(handler, logging.FileHandler)
        and Path(getattr(handler, "baseFilename", "")) == log_path.resolve()
        for handler in logger.handlers
    )


def setup_logging(
    level: int = logging.INFO,
    fmt: str = DEFAULT_LOG_FORMAT,
    datefmt: str = DEFAULT_DATE_FORMAT,
    log_file: Optional[Union[str, Path]] = None,
    reconfigure: bool = False,
) -> None:
    """
    Configure logging for tailfinder.

    Called by ``find_tails`` and the CLI entrypoint. Safe to call multiple
    times; an already configured logger only gains a file handler for a new
    ``log_file`` unless ``reconfigure`` is set.
    """
    logger = logging.getLogger("tailfinder")

    if logger.handlers and not reconfigure:
        if log_file is not None:
            log_path = Path(log_file)
            if not _has_file_handler(logger, log_path):
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path)
                file_handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
                logger.addHandler(file_handler)
        logger.setLevel(level)
        return

    if logger.handlers and reconfigure:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    # Console handler (stderr)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    # Optional file handler
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    logger.propagate = False


def detach_file_handlers(log_file: Union[str, Path]) -> None:
    """Close and remove the file handler writing to ``log_file``, if any."""
    logger = logging.getLogger("tailfinder")
    log_path = Path(log_file).resolve()
    for handler in list(logger.handlers):
        if (
            isinstance(handler, logging.FileHandler)
            and Path(getattr(handler, "baseFilename", "")) == log_path
        ):
            logger.removeHandler(handler)
            handler.close()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
