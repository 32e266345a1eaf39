"""Logging setup for the API process."""

import logging

from schoolhub.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging() -> None:
    """Configure the root logger from ``settings.log_level``."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    # SQL echo is controlled by DATABASE_ECHO, keep the engine logger quiet otherwise
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
