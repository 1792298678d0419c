"""Logging setup.

The terminal belongs to the UI, so records only ever go to a rotating file.
"""

import logging
import logging.handlers
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s"
MAX_BYTES = 1_000_000
BACKUP_COUNT = 3

logger = logging.getLogger("gitbuddy")


def setup_logging(log_file: Path, level: str = "INFO") -> Path:
    """Attach a rotating file handler to the ``gitbuddy`` logger.

    Handlers from an earlier call are removed first, so calling this twice
    (tests, re-exec) does not duplicate records. Returns the file in use.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return log_file
