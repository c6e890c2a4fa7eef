"""FanoutRouter — broadcasts every captured line to ALL configured sinks.

Delivery is synchronous: ``deliver`` returns only after each sink has
accepted the line, so the slowest sink sets the pace for every child
process feeding the router.  There is no queue at this layer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from influxin.errors import NoSinksConfigured

if TYPE_CHECKING:
    from influxin.routing.sinks import BaseSink

logger = logging.getLogger(__name__)


class FanoutRouter:
    """Routes lines to every registered sink, in registration order.

    The sink list is fixed at construction and lives as long as the
    process; the router has no shutdown of its own.

    Usage
    -----
    >>> router = FanoutRouter([batch_sink, passthrough_sink])
    >>> router.deliver("cpu,host=a value=1")

    Raises
    ------
    NoSinksConfigured
        If *sinks* is empty.
    """

    def __init__(
        self,
        sinks: Sequence[BaseSink],
        *,
        log: logging.Logger | None = None,
    ) -> None:
        if not sinks:
            raise NoSinksConfigured("no sinks specified")
        self._sinks: tuple[BaseSink, ...] = tuple(sinks)
        self._log = log or logger
        for sink in self._sinks:
            self._log.info("Registered sink: %s", sink.sink_name)

    @property
    def registered_sinks(self) -> list[BaseSink]:
        """Return a copy of the registered sink list."""
        return list(self._sinks)

    def deliver(self, line: str) -> None:
        """Hand *line* to every sink, blocking until all have accepted it."""
        for sink in self._sinks:
            sink.accept(line)

    def collect(self, lines: Iterable[str]) -> int:
        """Deliver every line of *lines* in order until the stream ends.

        Returns the number of lines delivered.
        """
        count = 0
        for line in lines:
            self.deliver(line)
            count += 1
        return count

    def __repr__(self) -> str:
        names = ", ".join(s.sink_name for s in self._sinks)
        return f"FanoutRouter(sinks=[{names}])"
