"""Logging configuration helpers."""

import logging

from app.config import settings


def configure_logging() -> None:
    """Configure application logging with a single stream handler."""
    logger = logging.getLogger("app")
    logger.setLevel(logging.INFO if settings.is_production else logging.DEBUG)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
