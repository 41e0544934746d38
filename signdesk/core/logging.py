import logging
from logging import Logger
from typing import Optional

from .config import Settings, get_settings

ROOT_LOGGER = "signdesk"


def configure_logging(settings: Optional[Settings] = None) -> Logger:
    """Set up the shared application logger once and return it.

    Module loggers (``logging.getLogger(__name__)``) live under the same
    ``signdesk`` namespace and propagate to this handler.
    """
    settings = settings or get_settings()

    logger = logging.getLogger(ROOT_LOGGER)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO if settings.is_production else logging.DEBUG)

    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(asctime)s | %(name)s | %(message)s")
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.propagate = False

    return logger
