"""Submitter — bounded worker pool that POSTs batch payloads over HTTP.

Delivery is best-effort and at-most-once: each payload gets exactly one
POST attempt.  Transport errors and non-2xx responses are logged and the
payload is dropped; the worker moves on to the next payload.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any

import requests

from influxin.logs import DEBUG_LOGGER

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain"

_STOP = object()


class SubmissionError(RuntimeError):
    """Raised when a single POST attempt fails."""


class Submitter:
    """Fixed-size pool of worker threads sharing one HTTP session.

    Parameters
    ----------
    workers:
        Number of worker threads.  Must be at least 1.
    queue_depth:
        Payloads allowed to wait for a free worker.  ``0`` makes
        ``submit`` block until a worker is ready to take the payload.
    endpoint:
        Fully resolved write URL.
    client:
        Shared ``requests.Session`` (or compatible object with ``post``).
    debug:
        Dump failed requests and responses to the debug logger.
    timeout:
        Per-request timeout in seconds, ``None`` for no timeout.
    """

    def __init__(
        self,
        workers: int,
        queue_depth: int,
        endpoint: str,
        client: requests.Session,
        *,
        debug: bool = False,
        timeout: float | None = None,
        log: logging.Logger | None = None,
        debug_logger: logging.Logger | None = None,
        start: bool = True,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if queue_depth < 0:
            raise ValueError(f"queue_depth must be >= 0, got {queue_depth}")

        self._endpoint = endpoint
        self._client = client
        self._debug = debug
        self._timeout = timeout
        self._log = log or logger
        self._dlog = debug_logger or logging.getLogger(DEBUG_LOGGER)

        # A slot is held from submit() until a worker finishes the payload,
        # so at most workers + queue_depth payloads are in flight.
        self._slots = threading.Semaphore(workers + queue_depth)
        self._queue: queue.Queue[Any] = queue.Queue()
        self._threads: list[threading.Thread] = [
            threading.Thread(
                target=self._run, name=f"influxin-submitter-{i}", daemon=True
            )
            for i in range(workers)
        ]
        self._started = False
        self._sent = 0
        self._failed = 0
        self._stats_lock = threading.Lock()
        if start:
            self.start()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def workers(self) -> int:
        return len(self._threads)

    @property
    def sent_count(self) -> int:
        """Number of payloads accepted by the endpoint."""
        with self._stats_lock:
            return self._sent

    @property
    def failed_count(self) -> int:
        """Number of payloads dropped after a failed attempt."""
        with self._stats_lock:
            return self._failed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for thread in self._threads:
            thread.start()
        self._log.debug(
            "Submitter: started %d worker(s) for %s", len(self._threads), self._endpoint
        )

    def close(self, timeout: float | None = None) -> None:
        """Stop the workers once every queued payload has been handled."""
        for _ in self._threads:
            self._queue.put(_STOP)
        if self._started:
            for thread in self._threads:
                thread.join(timeout)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, payload: bytes) -> None:
        """Hand a payload to the pool, blocking while the pool is saturated."""
        self._slots.acquire()
        self._queue.put(payload)

    def send(self, payload: bytes) -> None:
        """POST one payload.

        Raises
        ------
        SubmissionError
            On a transport error or a status outside [200, 300).
        """
        try:
            resp = self._client.post(
                self._endpoint,
                data=payload,
                headers={"Content-Type": CONTENT_TYPE},
                timeout=self._timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            if self._debug:
                self._dlog.debug(
                    "failed POST request:\n\nPOST %s\nContent-Type: %s\n\n%s\n",
                    self._endpoint,
                    CONTENT_TYPE,
                    payload.decode("utf-8", errors="replace"),
                )
            raise SubmissionError(f"cannot POST data: {exc}") from exc

        try:
            if not 200 <= resp.status_code < 300:
                if self._debug:
                    self._dump_exchange(resp)
                raise SubmissionError(
                    f"expected status 2xx, got {resp.status_code} {resp.reason or ''}".rstrip()
                )
            try:
                # Drain so the connection can go back to the pool.
                for _ in resp.iter_content(chunk_size=8192):
                    pass
            except requests.RequestException as exc:
                raise SubmissionError(f"cannot read and discard data: {exc}") from exc
        finally:
            resp.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while True:
            payload = self._queue.get()
            if payload is _STOP:
                return
            try:
                self.send(payload)
            except SubmissionError as exc:
                self._log.error("could not submit batch: %s", exc)
                with self._stats_lock:
                    self._failed += 1
            except Exception:  # noqa: BLE001
                self._log.exception("unexpected error submitting batch")
                with self._stats_lock:
                    self._failed += 1
            else:
                with self._stats_lock:
                    self._sent += 1
            finally:
                self._slots.release()

    def _dump_exchange(self, resp: requests.Response) -> None:
        req = resp.request
        if req is not None:
            body = req.body
            if isinstance(body, bytes):
                body = body.decode("utf-8", errors="replace")
            self._dlog.debug(
                "failed POST request:\n\n%s %s\n%s\n\n%s\n",
                req.method,
                req.url,
                _format_headers(req.headers),
                body or "",
            )
        try:
            content = resp.content.decode("utf-8", errors="replace")
        except requests.RequestException as exc:
            self._log.error("could not dump response for debugging: %s", exc)
            return
        self._dlog.debug(
            "failed POST response:\n\n%s %s\n%s\n\n%s\n\n",
            resp.status_code,
            resp.reason or "",
            _format_headers(resp.headers),
            content,
        )

    def __repr__(self) -> str:
        return f"Submitter(endpoint={self._endpoint!r}, workers={len(self._threads)})"


def _format_headers(headers: Any) -> str:
    return "\n".join(f"{k}: {v}" for k, v in (headers or {}).items())
