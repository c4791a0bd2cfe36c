"""
Application logger

Every module that does not take its own ``logging.getLogger(__name__)``
imports the shared instance from here:

    from utils.logger import logger
"""

import logging
import sys

from config import settings

LOGGER_NAME = "higclean"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logger(name: str = LOGGER_NAME, level: str = None) -> logging.Logger:
    """
    Configure and return the named logger.

    Safe to call more than once: a handler is only attached the first time.
    """
    log = logging.getLogger(name)
    log.setLevel((level or settings.LOG_LEVEL).upper())

    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log.addHandler(handler)
        log.propagate = True

    return log


logger = setup_logger()
