"""Logging infrastructure setup."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_ENV = "MARKET_MOVES_LOG_FILE"
LOG_LEVEL_ENV = "MARKET_MOVES_LOG_LEVEL"
DEFAULT_LOG_FILE = "output/market_moves.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(module)s.%(funcName)s | %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3


def setup_logger(name: str = "market_moves", log_file: str | None = None, level: str | None = None) -> logging.Logger:
    """
    Configure and return the service logger: a rotating log file plus the console.

    Args:
        name (str): The name of the logger.
        log_file (str | None): Path to the log file. Falls back to
            ``MARKET_MOVES_LOG_FILE``, then ``output/market_moves.log``. An empty
            environment value disables file logging.
        level (str | None): Level name. Falls back to ``MARKET_MOVES_LOG_LEVEL``,
            then ``INFO``.

    Returns:
        logging.Logger: The configured logger instance.
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers if setup is called multiple times
    if logger.hasHandlers():
        return logger

    level_name = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.propagate = False

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    target = log_file if log_file is not None else os.getenv(LOG_FILE_ENV, DEFAULT_LOG_FILE)
    if target:
        log_path = Path(target)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


logger = setup_logger()
