"""Logging setup for the bridge process."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO


VERBOSE = 5
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_ROOT_LOGGER = "emubridge"


def resolve_level(level: str | int) -> int:
    """Translate a level name (including ``VERBOSE``) into its numeric value."""

    if isinstance(level, int):
        return level
    text = level.strip().upper()
    if text.isdigit():
        return int(text)
    value = logging.getLevelName(text)
    if not isinstance(value, int):
        raise ValueError(f"unknown log level: {level!r}")
    return value


def configure_logging(
    *,
    level: str | int = "INFO",
    log_file: Path | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Attach file and stream handlers to the ``emubridge`` logger.

    Handlers are replaced on every call so repeated CLI invocations inside one
    interpreter do not duplicate records. ``stream`` defaults to stderr because
    stdout carries protocol frames in stdio mode.
    """

    logger = logging.getLogger(_ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    numeric_level = resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    console = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(max(numeric_level, logging.WARNING))
    logger.addHandler(console)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(numeric_level)
        logger.addHandler(file_handler)

    return logger


__all__ = ["LOG_FORMAT", "VERBOSE", "configure_logging", "resolve_level"]
