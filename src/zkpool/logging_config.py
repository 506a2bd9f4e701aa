"""Logging setup."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; defaults to the configured ``log_level``
    """
    if level is None:
        from zkpool.config import get_settings

        level = get_settings().log_level

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
