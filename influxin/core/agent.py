"""Agent — wires settings, sinks, router and supervisors into one pipeline.

The Agent builds the Submitter and BatchAccumulator when an endpoint is
configured, the PassthroughSink when lines should be mirrored, one shared
FanoutRouter over those sinks, and one ProcessSupervisor per command.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TextIO

import requests

from influxin.bridge.endpoint import make_http_client
from influxin.bridge.submitter import Submitter
from influxin.config import AgentSettings
from influxin.core.supervisor import ProcessSupervisor, SupervisorGroup
from influxin.errors import NoCommandsError, NoSinksConfigured
from influxin.models.command import Command
from influxin.models.supervision import RestartPolicy
from influxin.routing.router import FanoutRouter
from influxin.routing.sinks import BaseSink, BatchAccumulator, LineWriter, PassthroughSink

logger = logging.getLogger(__name__)


class Agent:
    """The metrics-shipping pipeline for a list of commands.

    Parameters
    ----------
    settings:
        Agent configuration.
    commands:
        Commands to supervise; at least one is required.
    client:
        HTTP session for the Submitter.  Built from *settings* when omitted.
    output_stream, error_stream:
        Operator streams, ``sys.stdout`` / ``sys.stderr`` by default.

    Raises
    ------
    NoCommandsError
        If *commands* is empty.
    NoSinksConfigured
        If neither an endpoint nor passthrough output is configured.
    EndpointError
        If the endpoint cannot be resolved.
    """

    def __init__(
        self,
        settings: AgentSettings,
        commands: Sequence[Command],
        *,
        client: requests.Session | None = None,
        output_stream: TextIO | None = None,
        error_stream: TextIO | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if not commands:
            raise NoCommandsError(
                "specify one or more commands to execute, separated by semicolon"
            )
        self.settings = settings
        self.commands = list(commands)
        self._log = log or logger

        self.endpoint = settings.resolved_endpoint()
        self.submitter: Submitter | None = None
        self.accumulator: BatchAccumulator | None = None
        self.passthrough: PassthroughSink | None = None
        # Passthrough lines and prefix-rejected lines share one writer.
        self.writer = LineWriter(output_stream)

        sinks: list[BaseSink] = []
        if self.endpoint:
            self.submitter = Submitter(
                settings.workers,
                settings.queue_depth,
                self.endpoint,
                client or make_http_client(settings.insecure),
                debug=settings.debug,
                timeout=settings.http_timeout,
            )
            self.accumulator = BatchAccumulator(
                settings.nbatch, settings.batch_time, self.submitter
            )
            sinks.append(self.accumulator)
        if settings.passthrough:
            self.passthrough = PassthroughSink(writer=self.writer)
            sinks.append(self.passthrough)

        try:
            self.router = FanoutRouter(sinks)
        except NoSinksConfigured as exc:
            raise NoSinksConfigured(f"{exc}: use either --endpoint or --verbose") from exc

        policy = RestartPolicy.for_fatal(settings.fatal)
        self.group = SupervisorGroup(
            [
                ProcessSupervisor(
                    command,
                    self.router,
                    policy=policy,
                    index=i,
                    writer=self.writer,
                    error_stream=error_stream,
                    restart_delay=settings.restart_delay,
                )
                for i, command in enumerate(self.commands)
            ]
        )

    def run(self) -> None:
        """Start the sinks and supervise every command until a fatal error.

        Raises
        ------
        FatalSupervisionError
            When a child fails and the restart policy gives up on it.
        """
        if self.accumulator is not None:
            self.accumulator.start()
        self._log.info(
            "Supervising %d command(s); sinks: %s",
            len(self.commands),
            ", ".join(s.sink_name for s in self.router.registered_sinks),
        )
        self.group.run()

    def stop(self) -> None:
        """Stop all supervisors (terminating their children)."""
        self.group.stop()

    def close(self, timeout: float | None = None) -> None:
        """Flush pending lines and stop the sink and submitter threads."""
        if self.accumulator is not None:
            self.accumulator.close(timeout, flush=True)
        if self.submitter is not None:
            self.submitter.close(timeout)
