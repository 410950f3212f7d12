"""Logging helpers."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOGGER_NAME = "sitemeta"
ENABLE_LOGS_ENV = "SITEMETA_ENABLE_LOGS"

_TRUTHY = {"1", "true", "yes", "on"}


def logs_enabled(verbose: bool = False) -> bool:
    """Return True when diagnostic (non-error) output should be emitted."""
    if verbose:
        return True
    return os.getenv(ENABLE_LOGS_ENV, "").strip().lower() in _TRUTHY


def configure_logging(verbose: bool = False) -> None:
    """Configure application logging once for CLI usage.

    Below ERROR everything is gated by ``--verbose`` or ``SITEMETA_ENABLE_LOGS``;
    errors always surface.
    """
    level = logging.DEBUG if logs_enabled(verbose) else logging.ERROR
    logging.basicConfig(level=level, format=LOG_FORMAT)
    get_logger().setLevel(level)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the package logger, or a child of it."""
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)
