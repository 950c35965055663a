"""Logging setup for the mason CLI.

Library modules only ever call ``logging.getLogger(__name__)``; handlers
are installed here, by the top-level caller.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Route log records for the ``mason`` package through rich.

    Calling this again replaces the previously installed handler.

    Args:
        level: Logging level name.
        console: Console to write to; defaults to stderr.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger = logging.getLogger("mason")
    for existing in list(package_logger.handlers):
        if isinstance(existing, RichHandler):
            package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


__all__ = ["configure_logging"]
