"""Batch accumulator — buffers lines and flushes them to the Submitter.

The accumulator owns a bounded inbox and a receive-loop thread.  The loop
waits for whichever comes first, a line or the next tick of a fixed-period
ticker, and is the only code that touches the batch.

Flush rules:

- A line arriving while the batch is full flushes the batch first, then
  starts the new batch with that line.
- A tick flushes a non-empty batch; a tick over an empty batch does nothing.
- The first tick after a capacity-triggered flush is skipped.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from influxin.bridge.submitter import Submitter

logger = logging.getLogger(__name__)

_STOP = object()


class BatchAccumulator:
    """Size- and time-bounded batching sink.

    Parameters
    ----------
    capacity:
        Maximum number of lines in one batch.
    interval:
        Ticker period in seconds.
    submitter:
        Receives each flushed payload; the accumulator never waits for the
        HTTP outcome.
    inbox_size:
        Depth of the inbox between the router and the receive loop.
    """

    def __init__(
        self,
        capacity: int,
        interval: float,
        submitter: Submitter,
        *,
        inbox_size: int = 1,
        log: logging.Logger | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        if inbox_size < 1:
            raise ValueError(f"inbox_size must be >= 1, got {inbox_size}")

        self._capacity = capacity
        self._interval = interval
        self._submitter = submitter
        self._log = log or logger

        self._batch: list[str] = []
        self._skip_tick = False
        self._flushes = 0

        self._inbox: queue.Queue[Any] = queue.Queue(maxsize=inbox_size)
        self._thread: threading.Thread | None = None
        self._stopping = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def sink_name(self) -> str:
        return "batch"

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def pending(self) -> list[str]:
        """Return a copy of the lines in the current batch."""
        return list(self._batch)

    @property
    def flush_count(self) -> int:
        return self._flushes

    @property
    def skip_next_tick(self) -> bool:
        return self._skip_tick

    # ------------------------------------------------------------------
    # Sink API
    # ------------------------------------------------------------------

    def accept(self, line: str) -> None:
        """Queue a line for the receive loop, blocking while the inbox is full."""
        self._inbox.put(line)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the receive loop thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="influxin-batch", daemon=True
        )
        self._thread.start()

    def close(self, timeout: float | None = None, *, flush: bool = False) -> None:
        """Stop the receive loop after it has consumed the queued lines.

        Pending lines are dropped unless *flush* is set.  If the loop is
        still running after *timeout*, nothing is flushed here; call
        ``close`` again to finish.
        """
        if self._thread is None:
            return
        if not self._stopping:
            try:
                self._inbox.put(_STOP, timeout=timeout)
            except queue.Full:
                self._log.warning("batch loop inbox still full after close timeout")
                return
            self._stopping = True
        self._thread.join(timeout)
        if self._thread.is_alive():
            self._log.warning("batch loop still busy after close timeout; not flushing")
            return
        self._thread = None
        self._stopping = False
        if flush and self._batch:
            self.flush()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def on_line(self, line: str) -> None:
        if len(self._batch) >= self._capacity:
            self.flush()
            self._skip_tick = True
        self._batch.append(line)

    def on_tick(self) -> None:
        if self._skip_tick:
            self._skip_tick = False
            return
        if not self._batch:
            return
        self.flush()

    def flush(self) -> None:
        """Serialise the batch, reset it and hand the payload to the Submitter."""
        if not self._batch:
            return
        payload = "".join(line + "\n" for line in self._batch).encode("utf-8")
        count = len(self._batch)
        self._batch.clear()
        self._flushes += 1
        self._log.debug("Flushing batch of %d line(s) (%d bytes)", count, len(payload))
        self._submitter.submit(payload)

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    def _run(self) -> None:
        next_tick = time.monotonic() + self._interval
        while True:
            now = time.monotonic()
            if now >= next_tick:
                self.on_tick()
                # Missed ticks are dropped, keeping the ticker phase.
                while next_tick <= now:
                    next_tick += self._interval
                continue
            try:
                item = self._inbox.get(timeout=next_tick - now)
            except queue.Empty:
                continue
            if item is _STOP:
                return
            self.on_line(item)

    def __repr__(self) -> str:
        return (
            f"BatchAccumulator(capacity={self._capacity}, "
            f"interval={self._interval}, pending={len(self._batch)})"
        )
