"""Process supervision — keeps each configured command running.

A ``ProcessSupervisor`` drives one command through the supervision state
machine (``VALID_TRANSITIONS``):

- STARTING: the child is spawned with its stdout and stderr piped.
- RUNNING: stdout lines are fed to the router on the supervisor's thread,
  stderr is copied verbatim to the operator on a helper thread.
- EXITED: the exit status is classified into a ``SupervisionOutcome``.
- RESTARTING / TERMINATED: decided by the ``RestartPolicy``.

A supervisor that terminates because of a failed child raises
``FatalSupervisionError``; the agent turns it into a non-zero exit.
"""

from __future__ import annotations

import collections
import io
import logging
import subprocess
import sys
import threading
from collections.abc import Iterator, Sequence
from typing import IO, TextIO

from influxin.errors import InfluxinError
from influxin.models.command import Command
from influxin.models.supervision import (
    VALID_TRANSITIONS,
    ExitKind,
    RestartPolicy,
    SupervisionOutcome,
    SupervisorState,
    SupervisorTransition,
)
from influxin.routing.router import FanoutRouter
from influxin.routing.sinks.passthrough import LineWriter

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested supervisor state transition is not valid."""


class FatalSupervisionError(InfluxinError):
    """A child failed and its supervisor gave up on it."""

    def __init__(self, message: str, outcome: SupervisionOutcome | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome


def _text_stream(raw: IO[bytes] | None) -> IO[str] | None:
    """Decode a child pipe as UTF-8, splitting lines on "\n" only."""
    if raw is None:
        return None
    return io.TextIOWrapper(raw, encoding="utf-8", errors="replace", newline="\n")


def _chomp(raw: str) -> str:
    """Strip one trailing newline and one trailing carriage return."""
    if raw.endswith("\n"):
        raw = raw[:-1]
    if raw.endswith("\r"):
        raw = raw[:-1]
    return raw


class ProcessSupervisor:
    """Runs one command, restarting it according to *policy*.

    Parameters
    ----------
    command:
        The command to supervise.
    router:
        Receives the child's stdout lines.
    policy:
        Restart policy; see ``RestartPolicy.for_fatal``.
    index:
        Position of the command on the command line, used in log messages.
    output_stream:
        Where lines rejected by the prefix filter are written
        (``sys.stdout`` by default), used when no *writer* is given.
    writer:
        Shared ``LineWriter`` for lines rejected by the prefix filter.
    error_stream:
        Where the child's stderr is copied (``sys.stderr`` by default).
    restart_delay:
        Seconds to wait before relaunching a child.
    history_size:
        Number of state transitions kept in ``history``.
    """

    def __init__(
        self,
        command: Command,
        router: FanoutRouter,
        *,
        policy: RestartPolicy = RestartPolicy.ALWAYS,
        index: int = 0,
        output_stream: TextIO | None = None,
        writer: LineWriter | None = None,
        error_stream: TextIO | None = None,
        restart_delay: float = 0.0,
        history_size: int = 64,
        log: logging.Logger | None = None,
    ) -> None:
        self._command = command
        self._router = router
        self._policy = policy
        self._index = index
        self._writer = writer or LineWriter(output_stream)
        self._error_stream = error_stream
        self._restart_delay = restart_delay
        self._log = log or logger

        self._state = SupervisorState.STARTING
        self._history: collections.deque[SupervisorTransition] = collections.deque(
            maxlen=history_size
        )
        self._restarts = 0
        self._proc: subprocess.Popen[bytes] | None = None
        self._proc_lock = threading.Lock()
        self._stop = threading.Event()
        self._read_error = ""

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def command(self) -> Command:
        return self._command

    @property
    def writer(self) -> LineWriter:
        return self._writer

    @property
    def policy(self) -> RestartPolicy:
        return self._policy

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def restarts(self) -> int:
        """Number of times the child has been relaunched."""
        return self._restarts

    @property
    def history(self) -> list[SupervisorTransition]:
        """Return the most recent state transitions, oldest first."""
        return list(self._history)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def transition(self, target: SupervisorState, reason: str = "") -> SupervisorTransition:
        """Move to *target*, recording the transition.

        Raises
        ------
        InvalidTransitionError
            If *target* is not reachable from the current state.
        """
        allowed = VALID_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition #{self._index} from {self._state.value} "
                f"to {target.value}. Allowed: {sorted(s.value for s in allowed)}"
            )
        record = SupervisorTransition(
            command=str(self._command),
            from_state=self._state,
            to_state=target,
            reason=reason,
        )
        self._history.append(record)
        self._state = target
        return record

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> SupervisionOutcome | None:
        """Supervise the command until the policy or ``stop()`` ends it.

        Returns the last outcome when supervision ends normally.

        Raises
        ------
        FatalSupervisionError
            If supervision ends because the child failed.
        """
        outcome: SupervisionOutcome | None = None
        while True:
            if self._stop.is_set():
                self._terminate("stopped")
                return outcome

            outcome = self.run_once()
            if self._stop.is_set():
                self._terminate("stopped")
                return outcome

            if outcome.is_failure:
                self._log.error(
                    "executing subprocess #%d: %s", self._index, outcome.error
                )
            elif outcome.kind is ExitKind.UNKNOWN:
                self._log.error(
                    "error waiting for command #%d: %s", self._index, outcome.error
                )

            if self._policy.should_restart(outcome):
                self.transition(SupervisorState.RESTARTING, outcome.kind.value)
                self._restarts += 1
                if self._restart_delay > 0:
                    self._stop.wait(self._restart_delay)
                self.transition(SupervisorState.STARTING, "restart")
                continue

            self._terminate(outcome.kind.value)
            if outcome.is_failure:
                self._log.critical("terminating all on subprocess failure")
                raise FatalSupervisionError(
                    f"subprocess #{self._index} ({self._command}) failed: {outcome.error}",
                    outcome,
                )
            return outcome

    def run_once(self) -> SupervisionOutcome:
        """Start the child, pump its output and wait for it to exit."""
        if self._state is not SupervisorState.STARTING:
            raise InvalidTransitionError(
                f"run_once requires state starting, not {self._state.value}"
            )
        self._log.debug(
            "executing #%d: %s %s", self._index, self._command.name, list(self._command.args)
        )
        self._read_error = ""

        try:
            proc = subprocess.Popen(
                self._command.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            outcome = SupervisionOutcome(
                kind=ExitKind.START_FAILED, error=f"cannot start command: {exc}"
            )
            self.transition(SupervisorState.EXITED, outcome.error)
            return outcome

        with self._proc_lock:
            self._proc = proc
            stopping = self._stop.is_set()
        if stopping:
            proc.terminate()
        self.transition(SupervisorState.RUNNING, f"pid {proc.pid}")

        stderr_thread = threading.Thread(
            target=self._drain_stderr,
            args=(_text_stream(proc.stderr),),
            name=f"influxin-stderr-{self._index}",
            daemon=True,
        )
        stderr_thread.start()

        delivery_error = ""
        source = self._stdout_lines(_text_stream(proc.stdout))
        try:
            lines = self._router.collect(source)
        except Exception as exc:  # noqa: BLE001
            lines = 0
            delivery_error = f"delivering output: {type(exc).__name__}: {exc}"
            self._kill(proc)
        finally:
            source.close()

        try:
            returncode: int | None = proc.wait()
        except (OSError, subprocess.SubprocessError) as exc:
            returncode = None
            wait_error = str(exc)
        else:
            wait_error = ""
        stderr_thread.join(timeout=5)
        with self._proc_lock:
            self._proc = None

        if delivery_error:
            outcome = SupervisionOutcome(
                kind=ExitKind.DELIVERY_FAILED,
                returncode=returncode,
                error=delivery_error,
                lines=lines,
            )
        elif returncode is None:
            outcome = SupervisionOutcome(kind=ExitKind.UNKNOWN, error=wait_error, lines=lines)
        elif returncode != 0:
            outcome = SupervisionOutcome(
                kind=ExitKind.ABNORMAL,
                returncode=returncode,
                error=f"child exited with failure code {returncode}",
                lines=lines,
            )
        elif self._read_error:
            outcome = SupervisionOutcome(
                kind=ExitKind.STREAM_FAILED,
                returncode=returncode,
                error=f"reading stdout: {self._read_error}",
                lines=lines,
            )
        else:
            outcome = SupervisionOutcome(kind=ExitKind.CLEAN, returncode=0, lines=lines)

        self.transition(SupervisorState.EXITED, outcome.kind.value)
        return outcome

    def stop(self) -> None:
        """Stop supervising: no further restarts, current child terminated."""
        self._stop.set()
        with self._proc_lock:
            proc = self._proc
        if proc is not None and proc.poll() is None:
            try:
                proc.terminate()
            except OSError as exc:
                self._log.warning("cannot terminate subprocess #%d: %s", self._index, exc)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _terminate(self, reason: str) -> None:
        if self._state is not SupervisorState.TERMINATED:
            self.transition(SupervisorState.TERMINATED, reason)

    def _kill(self, proc: subprocess.Popen[bytes]) -> None:
        if proc.poll() is not None:
            return
        try:
            proc.kill()
        except OSError as exc:
            self._log.warning("cannot kill subprocess #%d: %s", self._index, exc)

    def _stdout_lines(self, stream: IO[str] | None) -> Iterator[str]:
        if stream is None:
            return
        prefix = self._command.prefix
        try:
            for raw in stream:
                line = _chomp(raw)
                if not prefix:
                    yield line
                elif line.startswith(prefix):
                    yield line[len(prefix):].strip()
                else:
                    self._writer.write_line(line)
        except (OSError, ValueError) as exc:
            self._read_error = str(exc)
            self._log.error("reading stdout of #%d: %s", self._index, exc)
        finally:
            stream.close()

    def _drain_stderr(self, stream: IO[str] | None) -> None:
        if stream is None:
            return
        try:
            for raw in stream:
                err = self._error_stream or sys.stderr
                err.write(_chomp(raw) + "\n")
                err.flush()
        except (OSError, ValueError) as exc:
            self._log.error("reading stderr of #%d: %s", self._index, exc)
        finally:
            stream.close()

    def __repr__(self) -> str:
        return (
            f"ProcessSupervisor(#{self._index} {self._command}, "
            f"state={self._state.value}, restarts={self._restarts})"
        )


class SupervisorGroup:
    """Runs one supervisor per command and waits for them.

    A single supervisor runs on the calling thread; several run on one
    daemon thread each.  The first ``FatalSupervisionError`` stops every
    other supervisor and is re-raised from ``run``.
    """

    def __init__(
        self,
        supervisors: Sequence[ProcessSupervisor],
        *,
        log: logging.Logger | None = None,
    ) -> None:
        self._supervisors = list(supervisors)
        self._log = log or logger
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._remaining = len(self._supervisors)
        self._fatal: FatalSupervisionError | None = None

    @property
    def supervisors(self) -> list[ProcessSupervisor]:
        return list(self._supervisors)

    def run(self) -> None:
        """Block until every supervisor has ended.

        Raises
        ------
        FatalSupervisionError
            The first fatal error raised by any supervisor.
        """
        if not self._supervisors:
            return
        if len(self._supervisors) == 1:
            self._supervisors[0].run()
            return

        for i, supervisor in enumerate(self._supervisors):
            threading.Thread(
                target=self._run_one,
                args=(supervisor,),
                name=f"influxin-supervisor-{i}",
                daemon=True,
            ).start()

        while not self._done.wait(0.5):
            pass

        if self._fatal is not None:
            self.stop()
            raise self._fatal

    def stop(self) -> None:
        for supervisor in self._supervisors:
            supervisor.stop()

    def _run_one(self, supervisor: ProcessSupervisor) -> None:
        try:
            supervisor.run()
        except FatalSupervisionError as exc:
            with self._lock:
                if self._fatal is None:
                    self._fatal = exc
            self._done.set()
        except Exception as exc:  # noqa: BLE001
            self._log.exception("supervisor %r crashed", supervisor)
            with self._lock:
                if self._fatal is None:
                    self._fatal = FatalSupervisionError(f"supervisor crashed: {exc}")
            self._done.set()
        finally:
            with self._lock:
                self._remaining -= 1
                if self._remaining == 0:
                    self._done.set()
