"""Logging setup for the allowance engine process."""

from __future__ import annotations

import logging

from allowance_engine.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the process.

    Library modules only create ``logging.getLogger(__name__)``; handlers
    are attached here so embedding applications keep control.
    """
    resolved = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("allowance_engine").setLevel(resolved)
    # SQL echo is controlled by the engine, not the log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
