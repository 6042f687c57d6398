"""Logging utilities for FinChat using Python's built-in logging module.

Provides simple functions to configure Python's logging system and retrieve loggers.
"""

from __future__ import annotations

import logging


def configure_logging(debug: bool = False) -> None:
    """Configure Python's logging system with a standard format.
    
    Calls logging.basicConfig() once with appropriate log level and format.
    Repeated calls have no effect (basicConfig only configures if not already done).
    
    Args:
        debug: If True, set log level to DEBUG; otherwise use INFO. Defaults to False.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Request/response lines from the HTTP transport would interleave with the chat.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the named logger (typically "finchat")."""
    return logging.getLogger(name)
