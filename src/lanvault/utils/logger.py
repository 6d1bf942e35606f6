"""Rotating log file for the vault CLI, under platformdirs user_log_dir.

Modules log through ``logging.getLogger(__name__)``; every such logger is a
child of the ``lanvault`` logger configured here. Log lines carry ids, counts
and peer addresses only, never passwords, keys or decrypted fields.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

from platformdirs import user_log_dir

APP_LOGGER = "lanvault"
LOG_FILE = "lanvault.log"
LOG_LEVEL_ENV = "LANVAULT_LOG_LEVEL"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3

_logger: logging.Logger | None = None


def log_level() -> int:
    """Level from ``LANVAULT_LOG_LEVEL`` (a level name), DEBUG if unset or unknown."""
    level = logging.getLevelName(os.environ.get(LOG_LEVEL_ENV, "DEBUG").strip().upper())
    return level if isinstance(level, int) else logging.DEBUG


def log_path() -> Path:
    return Path(user_log_dir(APP_LOGGER)) / LOG_FILE


def get_logger() -> logging.Logger:
    """The ``lanvault`` logger, attached to the log file on first call."""
    global _logger
    if _logger is not None:
        return _logger

    path = log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    # Entry ids and peer addresses are private to the vault owner
    path.chmod(0o600)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )

    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(log_level())
    if not logger.handlers:
        logger.addHandler(handler)
    logger.propagate = False

    _logger = logger
    return _logger
