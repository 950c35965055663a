"""Tests for logging setup."""

import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from mason.logs import configure_logging


def _rich_handlers():
    return [
        h for h in logging.getLogger("mason").handlers if isinstance(h, RichHandler)
    ]


def test_installs_single_handler():
    """Calling configure_logging twice should not duplicate handlers."""
    configure_logging("INFO")
    configure_logging("DEBUG")

    assert len(_rich_handlers()) == 1
    assert logging.getLogger("mason").level == logging.DEBUG


def test_records_reach_console():
    """Records from mason modules should be written to the console."""
    buffer = io.StringIO()
    configure_logging("INFO", console=Console(file=buffer, width=200))

    logging.getLogger("mason.builder").info("building at %s", "/tmp/w")

    assert "building at /tmp/w" in buffer.getvalue()
