"""Data models for influxin: supervised commands and supervision state."""

from influxin.models.command import COMMAND_SEPARATOR, Command, commands_from_args
from influxin.models.supervision import (
    VALID_TRANSITIONS,
    ExitKind,
    RestartPolicy,
    SupervisionOutcome,
    SupervisorState,
    SupervisorTransition,
)

__all__ = [
    "COMMAND_SEPARATOR",
    "Command",
    "commands_from_args",
    "VALID_TRANSITIONS",
    "ExitKind",
    "RestartPolicy",
    "SupervisionOutcome",
    "SupervisorState",
    "SupervisorTransition",
]
