"""
Logging configuration for the Reddit relay

Configures the root logger for the bot process.
"""

import logging
import sys
from typing import Optional


LOG_FORMAT = '[%(name)s] %(levelname)s: %(message)s'


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger for the bot process.

    Args:
        level: Level name such as "DEBUG" or "INFO" (default: INFO)
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))

    if not any(getattr(h, "_relay_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._relay_handler = True
        root.addHandler(handler)

    # asyncpraw and sqlalchemy are chatty at INFO
    logging.getLogger("asyncprawcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
