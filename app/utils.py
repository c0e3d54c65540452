"""
Shared helpers.
"""
import logging
import sys

from app.core import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_logger(name: str = __name__) -> logging.Logger:
    """
    Get a logger writing to stdout at the configured LOG_LEVEL.

    Usage:
        log = get_logger(__name__)
        log.info("Application started")
    """
    logger = logging.getLogger(name)
    logger.setLevel(LEVEL_MAP.get(config.LOG_LEVEL.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
