"""Supervised command model and command-line splitting."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

# Token that separates commands on the command line (quote it in the shell).
COMMAND_SEPARATOR = ";"


class Command(BaseModel):
    """One child process to keep running for the lifetime of the agent.

    ``prefix`` is the line filter applied to the child's stdout: when set,
    only lines starting with it are delivered to sinks.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    args: tuple[str, ...] = ()
    prefix: str = ""

    @property
    def argv(self) -> list[str]:
        """Return the full argument vector passed to ``exec``."""
        return [self.name, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


def commands_from_args(
    args: Iterable[str],
    *,
    prefix: str = "",
    nosplit: bool = False,
) -> list[Command]:
    """Split positional CLI arguments into commands.

    The first token of each command is its executable.  A literal ``;``
    token closes the current command, unless *nosplit* is set, in which
    case it is passed to the child as an ordinary argument.  Empty
    commands (e.g. a trailing ``;``) are dropped.
    """
    commands: list[Command] = []
    name = ""
    cmd_args: list[str] = []

    for token in args:
        if not name:
            if token == COMMAND_SEPARATOR and not nosplit:
                continue
            name = token
            continue
        if token == COMMAND_SEPARATOR and not nosplit:
            commands.append(Command(name=name, args=tuple(cmd_args), prefix=prefix))
            name, cmd_args = "", []
            continue
        cmd_args.append(token)

    if name:
        commands.append(Command(name=name, args=tuple(cmd_args), prefix=prefix))
    return commands
