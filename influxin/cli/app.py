"""Main Typer application — the ``influxin`` command.

Entry point: ``influxin`` (configured via pyproject.toml console_scripts).

Usage::

    influxin [OPTIONS] COMMAND [ARGS]... [';' COMMAND [ARGS]...]...

Everything after the first positional argument belongs to the supervised
commands, so child flags are never parsed as influxin options.
"""

from __future__ import annotations

from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from influxin import __version__
from influxin.bridge.endpoint import DEFAULT_ENDPOINT
from influxin.config import AgentSettings
from influxin.core.agent import Agent
from influxin.core.supervisor import FatalSupervisionError
from influxin.errors import ConfigurationError
from influxin.logs import configure_logging
from influxin.models.command import commands_from_args

console = Console(stderr=True)

app = typer.Typer(
    name="influxin",
    help="Run commands and ship their line-protocol output to InfluxDB in batches.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _fail(message: str) -> typer.Exit:
    console.print(f"[bold red]fatal - configuration error:[/bold red] {escape(message)}")
    return typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"influxin {__version__}")
        raise typer.Exit()


@app.command(
    name="run",
    help="Supervise commands and relay their output.",
    context_settings={"allow_interspersed_args": False},
)
def run_cmd(
    commands: Optional[List[str]] = typer.Argument(
        None,
        metavar="COMMAND [ARGS]...",
        help="Commands to run, separated by a quoted ';' token.",
        show_default=False,
    ),
    verbose: Optional[bool] = typer.Option(
        None, "--verbose", help="Print measurements to stdout.", show_default=False
    ),
    debug: Optional[bool] = typer.Option(
        None, "--debug", help="Log failed requests and responses.", show_default=False
    ),
    insecure: Optional[bool] = typer.Option(
        None, "--insecure", help="Ignore TLS validation.", show_default=False
    ),
    nosplit: Optional[bool] = typer.Option(
        None, "--nosplit", help="Do not split the commands by semicolon.", show_default=False
    ),
    ssl: Optional[bool] = typer.Option(
        None, "--ssl", help="Use TLS/SSL to connect to the endpoint.", show_default=False
    ),
    endpoint: Optional[str] = typer.Option(
        None,
        "--endpoint",
        help=(
            "Address of the InfluxDB write endpoint; without it, lines are only "
            f"printed. [dim]Placeholder: {escape(DEFAULT_ENDPOINT)}[/dim]"
        ),
        show_default=False,
    ),
    user: Optional[str] = typer.Option(None, "--user", help="Username for authentication."),
    password: Optional[str] = typer.Option(
        None, "--password", help="Password for authentication."
    ),
    host: Optional[str] = typer.Option(
        None, "--host", help="Hostname of InfluxDB (overrides endpoint)."
    ),
    dbname: Optional[str] = typer.Option(
        None, "--dbname", help="Database name of InfluxDB (overrides endpoint)."
    ),
    prefix: Optional[str] = typer.Option(
        None, "--prefix", help="Only ship lines with this prefix, write back everything else."
    ),
    nbatch: Optional[int] = typer.Option(
        None, "--nbatch", help="Max number of measurements to cache. [dim]Default: 100[/dim]"
    ),
    batch_time: Optional[str] = typer.Option(
        None,
        "--batch-time",
        help="Max duration between flushes of the cache, e.g. 30s or 1m. [dim]Default: 1m[/dim]",
    ),
    fatal: Optional[bool] = typer.Option(
        None, "--fatal", help="Subprocess errors are fatal errors.", show_default=False
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", help="Number of HTTP submitting workers. [dim]Default: 1[/dim]"
    ),
    queue_depth: Optional[int] = typer.Option(
        None, "--queue-depth", help="Batches allowed to wait for a worker. [dim]Default: 0[/dim]"
    ),
    http_timeout: Optional[float] = typer.Option(
        None, "--timeout", help="HTTP request timeout in seconds."
    ),
    restart_delay: Optional[str] = typer.Option(
        None, "--restart-delay", help="Pause before relaunching a command. [dim]Default: 0s[/dim]"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level for agent messages. [dim]Default: WARNING[/dim]"
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Supervise COMMAND(s), batching their stdout lines to InfluxDB."""
    flags = {
        "verbose": verbose,
        "debug": debug,
        "insecure": insecure,
        "nosplit": nosplit,
        "ssl": ssl,
        "endpoint": endpoint,
        "user": user,
        "password": password,
        "host": host,
        "dbname": dbname,
        "prefix": prefix,
        "nbatch": nbatch,
        "batch_time": batch_time,
        "fatal": fatal,
        "workers": workers,
        "queue_depth": queue_depth,
        "http_timeout": http_timeout,
        "restart_delay": restart_delay,
        "log_level": log_level,
    }
    try:
        settings = AgentSettings(**{k: v for k, v in flags.items() if v is not None})
    except ValidationError as exc:
        raise _fail(_summarize(exc))

    configure_logging(settings.effective_log_level)

    cmds = commands_from_args(
        commands or [], prefix=settings.prefix, nosplit=settings.nosplit
    )
    try:
        agent = Agent(settings, cmds)
    except ConfigurationError as exc:
        raise _fail(str(exc))

    try:
        agent.run()
    except FatalSupervisionError:
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        agent.stop()
        raise typer.Exit(code=130)


def _summarize(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
        for err in exc.errors()
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
