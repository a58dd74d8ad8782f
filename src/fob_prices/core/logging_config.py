"""Logging setup for command-line runs.

Library modules only create loggers via ``logging.getLogger(__name__)``;
handlers are attached here, once, by the CLI.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_PACKAGE_LOGGER = "fob_prices"

# Transport libraries log every request at INFO/DEBUG.
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def configure_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a Rich handler to the package logger.

    Args:
        verbose: Log at DEBUG instead of INFO (includes response excerpts).
        console: Console to render on. Defaults to a stderr console.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    level = logging.DEBUG if verbose else logging.INFO

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
