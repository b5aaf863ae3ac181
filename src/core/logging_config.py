"""Logging setup for processes that run the scheduling services."""

import logging

from core.config import LOG_LEVEL


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install the root handler and format used by every module logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    # SQL echo stays off unless explicitly raised
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
