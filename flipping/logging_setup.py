"""
Logging configuration for the trade store tools.

The store itself only ever calls logging.getLogger(__name__); handlers are
attached here by whichever entry point owns the process (the CLI, or a host
application).
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from flipping.config import LOG_FILE_NAME, get_data_dir

LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
CONSOLE_FORMAT = "[%(levelname)s] %(name)s - %(message)s"


def setup_logging(
    debug: bool = False,
    log_dir: Optional[Path] = None,
    console: bool = True,
) -> Path:
    """
    Attach a rotating file handler (and optionally a console handler) to the
    root logger, replacing any handlers configured earlier.

    Args:
        debug: Log at DEBUG instead of INFO
        log_dir: Directory for flipping.log; defaults to the data directory
        console: Also log to stderr

    Returns:
        Path of the log file
    """
    log_dir = Path(log_dir) if log_dir is not None else get_data_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    file_handler.setLevel(level)
    root_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.setLevel(level)
        root_logger.addHandler(console_handler)

    root_logger.debug(f"Logging to {log_file}")
    return log_file
