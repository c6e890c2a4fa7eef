"""Sink protocol for influxin line routing.

All sinks implement the ``BaseSink`` protocol: a ``sink_name`` property
and an ``accept(line)`` method.  The router calls ``accept`` on every
registered sink for every captured line.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BaseSink(Protocol):
    """Protocol that every influxin sink must implement.

    Attributes
    ----------
    sink_name : str
        A human-readable identifier for this sink instance
        (e.g. ``"batch"``, ``"passthrough"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the name of this sink."""
        ...

    def accept(self, line: str) -> None:
        """Accept one line.

        The call may block; a slow sink throttles the router and, through
        it, the reading of the child's stdout.
        """
        ...


from influxin.routing.sinks.batch import BatchAccumulator  # noqa: E402
from influxin.routing.sinks.passthrough import LineWriter, PassthroughSink  # noqa: E402

__all__ = ["BaseSink", "BatchAccumulator", "LineWriter", "PassthroughSink"]
