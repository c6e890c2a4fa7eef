"""Supervision state machine models — states, transitions, restart policy."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SupervisorState(str, Enum):
    """Lifecycle state of one supervised child process."""

    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    RESTARTING = "restarting"
    TERMINATED = "terminated"


# Valid state transitions, enforced by ProcessSupervisor.
# TERMINATED has no outgoing transitions.
VALID_TRANSITIONS: dict[SupervisorState, set[SupervisorState]] = {
    SupervisorState.STARTING: {
        SupervisorState.RUNNING,
        SupervisorState.EXITED,  # start failure
        SupervisorState.TERMINATED,
    },
    SupervisorState.RUNNING: {SupervisorState.EXITED},
    SupervisorState.EXITED: {SupervisorState.RESTARTING, SupervisorState.TERMINATED},
    SupervisorState.RESTARTING: {SupervisorState.STARTING},
    SupervisorState.TERMINATED: set(),  # terminal
}


class ExitKind(str, Enum):
    """How a single child run ended."""

    CLEAN = "clean"  # exit status zero
    ABNORMAL = "abnormal"  # non-zero exit status or killed by a signal
    START_FAILED = "start_failed"  # could not exec or attach pipes
    STREAM_FAILED = "stream_failed"  # stdout could not be read
    DELIVERY_FAILED = "delivery_failed"  # a sink rejected a line
    UNKNOWN = "unknown"  # waiting for the child failed


class SupervisionOutcome(BaseModel):
    """Result of one start-run-exit cycle of a child process."""

    model_config = ConfigDict(frozen=True)

    kind: ExitKind
    returncode: int | None = None
    error: str = ""
    lines: int = 0  # stdout lines delivered to the router

    @property
    def is_failure(self) -> bool:
        """Whether the outcome counts as a failure of the child."""
        return self.kind in (
            ExitKind.ABNORMAL,
            ExitKind.START_FAILED,
            ExitKind.STREAM_FAILED,
            ExitKind.DELIVERY_FAILED,
        )


class RestartPolicy(str, Enum):
    """Decides whether a child is relaunched after it exits."""

    ALWAYS = "always"
    NEVER = "never"
    ON_CLEAN_EXIT = "on_clean_exit"

    @classmethod
    def for_fatal(cls, fatal: bool) -> RestartPolicy:
        """Map the ``--fatal`` flag to a policy."""
        return cls.ON_CLEAN_EXIT if fatal else cls.ALWAYS

    def should_restart(self, outcome: SupervisionOutcome) -> bool:
        # A broken sink breaks every relaunch the same way.
        if outcome.kind is ExitKind.DELIVERY_FAILED:
            return False
        if self is RestartPolicy.ALWAYS:
            return True
        if self is RestartPolicy.NEVER:
            return False
        return not outcome.is_failure


class SupervisorTransition(BaseModel):
    """Records a single supervisor state transition."""

    model_config = ConfigDict(frozen=True)

    command: str
    from_state: SupervisorState
    to_state: SupervisorState
    reason: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
