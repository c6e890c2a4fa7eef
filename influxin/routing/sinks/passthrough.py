"""Passthrough sink — mirrors every line to an output stream."""

from __future__ import annotations

import sys
import threading
from typing import TextIO


class LineWriter:
    """Writes whole lines to an operator stream, one writer at a time.

    Shared by the passthrough sink and every supervisor's prefix filter so
    lines from different sources never interleave.

    Parameters
    ----------
    stream:
        Destination text stream.  Defaults to ``sys.stdout`` resolved at
        write time, so redirection after construction is honoured.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def write_line(self, line: str) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            stream.write(line + "\n")
            stream.flush()


class PassthroughSink:
    """Writes each accepted line, newline-terminated, through a ``LineWriter``.

    Parameters
    ----------
    stream:
        Destination text stream, used when no *writer* is given.
    writer:
        Shared writer; takes precedence over *stream*.
    """

    def __init__(
        self, stream: TextIO | None = None, *, writer: LineWriter | None = None
    ) -> None:
        self._writer = writer or LineWriter(stream)

    @property
    def sink_name(self) -> str:
        return "passthrough"

    @property
    def writer(self) -> LineWriter:
        return self._writer

    def accept(self, line: str) -> None:
        self._writer.write_line(line)
