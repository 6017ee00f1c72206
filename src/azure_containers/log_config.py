"""structlog configuration for scripts built on this package."""

from __future__ import annotations

import sys

import structlog


def configure_logging(json_output: bool | None = None) -> None:
    """Install the processor chain: level, ISO timestamp, console or JSON rendering to stderr.

    Args:
        json_output: Force JSON (True) or console (False) rendering. By default the
            console renderer is used when stderr is a terminal.
    """
    if json_output is None:
        json_output = not sys.stderr.isatty()
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
