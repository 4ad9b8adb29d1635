"""Logging setup shared by the API and the bot."""

from __future__ import annotations

import logging

from bytehub.shared.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure the root logger from settings.

    Safe to call more than once; the handler is only installed the first time.
    """
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())

    if not any(getattr(h, "_bytehub", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._bytehub = True
        root.addHandler(handler)

    # SQLAlchemy logs every statement at INFO when echo is on
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
