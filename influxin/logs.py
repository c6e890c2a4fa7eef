"""Logging setup for the agent.

Components log through ``logging.getLogger(__name__)`` by default and accept
an explicit ``logger`` argument so tests can inject a discarding one.
Failed HTTP exchanges are dumped to the ``influxin.debug`` logger.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "influxin"
DEBUG_LOGGER = "influxin.debug"


def configure_logging(level: str | int = logging.WARNING) -> logging.Logger:
    """Attach a stderr ``RichHandler`` to the ``influxin`` logger hierarchy.

    Calling it again replaces the previously installed handler, so the CLI
    can be invoked repeatedly in one interpreter (tests).
    """
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if getattr(handler, "_influxin", False):
            root.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler._influxin = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level if isinstance(level, int) else level.upper())
    return root


def discard_logger(name: str = "influxin.discard") -> logging.Logger:
    """Return a logger that drops every record."""
    logger = logging.getLogger(name)
    logger.handlers = [logging.NullHandler()]
    logger.propagate = False
    logger.disabled = True
    return logger
