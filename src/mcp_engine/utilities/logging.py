"""Logging utilities for mcp-engine."""

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def get_logger(name: str) -> logging.Logger:
    """Get a logger by name.

    Modules call this with ``__name__`` so that loggers follow the package
    hierarchy and inherit the handler installed by :func:`configure_logging`.

    Args:
        name: the name of the logger, usually ``__name__``

    Returns:
        the logger registered under ``name``
    """
    return logging.getLogger(name)


def configure_logging(level: LogLevel = "INFO") -> None:
    """Configure logging for mcp-engine.

    Output goes to stderr: on the stdio transport stdout is the wire.

    Args:
        level: the log level to use
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
