"""Shared test fixtures for influxin."""

from __future__ import annotations

import os
import sys
import threading
import time
from collections.abc import Callable
from typing import Any

import pytest
import requests

from influxin.models.command import Command


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingSink:
    """A sink that remembers every line it accepts."""

    def __init__(self, name: str = "recording") -> None:
        self._name = name
        self._lock = threading.Lock()
        self.received: list[str] = []

    @property
    def sink_name(self) -> str:
        return self._name

    def accept(self, line: str) -> None:
        with self._lock:
            self.received.append(line)


class RecordingSubmitter:
    """Stands in for the Submitter; keeps payloads instead of POSTing them."""

    def __init__(self) -> None:
        self.payloads: list[bytes] = []

    def submit(self, payload: bytes) -> None:
        self.payloads.append(payload)

    @property
    def batches(self) -> list[list[str]]:
        return [p.decode("utf-8").splitlines() for p in self.payloads]


def make_response(
    status: int = 204,
    body: bytes = b"",
    *,
    reason: str = "",
    url: str = "http://localhost:8086/write?db=test",
    request: requests.PreparedRequest | None = None,
) -> requests.Response:
    """Build a fully-read ``requests.Response``."""
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason or {200: "OK", 204: "No Content", 500: "Internal Server Error"}.get(
        status, ""
    )
    resp._content = body
    resp._content_consumed = True
    resp.headers["Content-Type"] = "application/json"
    resp.url = url
    resp.request = request
    return resp


class FakeSession:
    """Minimal ``requests.Session`` replacement recording every POST.

    *responses* are consumed in order; once exhausted, every request gets
    a 204.  An exception instance in *responses* is raised instead.
    """

    def __init__(self, responses: list[Any] | None = None) -> None:
        self._responses = list(responses or [])
        self._lock = threading.Lock()
        self.calls: list[dict[str, Any]] = []
        self.gate: threading.Event | None = None

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        if self.gate is not None:
            self.gate.wait(5)
        with self._lock:
            self.calls.append({"url": url, **kwargs})
            planned = self._responses.pop(0) if self._responses else None
        if isinstance(planned, Exception):
            raise planned
        request = requests.Request(
            "POST", url, data=kwargs.get("data"), headers=kwargs.get("headers")
        ).prepare()
        if planned is None:
            return make_response(204, url=url, request=request)
        planned.request = request
        return planned

    @property
    def bodies(self) -> list[bytes]:
        with self._lock:
            return [c["data"] for c in self.calls]


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll *predicate* until it is true or *timeout* expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def recording_submitter() -> RecordingSubmitter:
    return RecordingSubmitter()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def python_command() -> Callable[..., Command]:
    """Factory fixture: a Command running a Python snippet in a child."""

    def _factory(code: str, *, prefix: str = "") -> Command:
        return Command(name=sys.executable, args=("-c", code), prefix=prefix)

    return _factory


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep INFLUXIN_* variables and stray .env files out of every test."""
    for key in list(os.environ):
        if key.startswith("INFLUXIN_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
