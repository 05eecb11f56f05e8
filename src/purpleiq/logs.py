"""Logging setup for the purpleiq package.

Library modules only create ``logging.getLogger(__name__)`` loggers; handlers
are attached here, once, by the CLI (or by an embedding application).
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_ROOT_LOGGER = "purpleiq"


def configure_logging(level: str | int = "WARNING", console: Console | None = None) -> logging.Logger:
    """Attach a single RichHandler to the ``purpleiq`` logger.

    Safe to call repeatedly: an existing RichHandler is replaced, not duplicated.

    Args:
        level: Level name (``"INFO"``) or numeric level.
        console: Console to render to. Defaults to stderr.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level if isinstance(level, int) else level.upper())
    logger.propagate = False
    return logger
