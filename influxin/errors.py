"""Exception hierarchy shared across influxin subsystems."""

from __future__ import annotations


class InfluxinError(RuntimeError):
    """Base class for all influxin errors."""


class ConfigurationError(InfluxinError):
    """The agent is misconfigured and the pipeline must not start."""


class NoCommandsError(ConfigurationError):
    """No command was given on the command line."""


class NoSinksConfigured(ConfigurationError):
    """The fan-out router was built without any sink."""


class EndpointError(ConfigurationError):
    """The ingestion endpoint URL cannot be parsed or resolved."""
