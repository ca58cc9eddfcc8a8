"""Logging utilities for the pbls analysis engine."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "pbls"

_CONSOLE_FORMAT = "[pbls] %(levelname)s %(message)s"
# Compiler runs happen on timer and worker threads; name them when debugging.
_VERBOSE_CONSOLE_FORMAT = "[pbls] %(levelname)s [%(threadName)s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the pbls hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send pbls logs to stderr and, optionally, to ``log_file``.

    Editor clients own stdout, so the console handler always writes to stderr.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    _reset_handlers(logger)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(_VERBOSE_CONSOLE_FORMAT if verbose else _CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)
        # The file sink always records debug output.
        logger.setLevel(logging.DEBUG)

    return logger


def _reset_handlers(logger: logging.Logger) -> None:
    # Repeated configuration (tests, re-entrant CLI calls) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


__all__ = ["configure_logging", "get_logger"]
