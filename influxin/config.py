"""Agent configuration — env-driven, overridable from the command line.

Centralized settings using pydantic-settings.  Every option can be set via
an ``INFLUXIN_*`` environment variable or a ``.env`` file; command-line
flags take precedence over both.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from influxin.bridge.endpoint import DEFAULT_ENDPOINT, resolve_endpoint

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> float:
    """Convert a duration to seconds.

    Accepts numbers (seconds) and unit strings such as ``"1m"``, ``"30s"``,
    ``"250ms"`` or ``"1h30m"``.

    Raises
    ------
    ValueError
        If the value is not a recognised duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


class AgentSettings(BaseSettings):
    """Runtime configuration for the agent.

    Examples
    --------
    Override via environment::

        export INFLUXIN_ENDPOINT=http://influx:8086/write?db=metrics
        export INFLUXIN_BATCH_TIME=30s
        export INFLUXIN_FATAL=true

    Or via .env file::

        INFLUXIN_NBATCH=500
        INFLUXIN_VERBOSE=true
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="INFLUXIN_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Output
    verbose: bool = False
    debug: bool = False
    log_level: str = "WARNING"

    # Endpoint
    endpoint: str = DEFAULT_ENDPOINT
    user: str = ""
    password: str = ""
    host: str = ""
    dbname: str = ""
    ssl: bool = False
    insecure: bool = False
    http_timeout: float | None = Field(default=None, gt=0)

    # Batching
    nbatch: int = Field(default=100, gt=0)
    batch_time: float = Field(default=60.0, gt=0)

    # Submission
    workers: int = Field(default=1, ge=1)
    queue_depth: int = Field(default=0, ge=0)

    # Supervision
    prefix: str = ""
    nosplit: bool = False
    fatal: bool = False
    restart_delay: float = Field(default=0.0, ge=0)

    @field_validator("batch_time", "restart_delay", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def has_endpoint(self) -> bool:
        """Whether an endpoint other than the placeholder was configured."""
        return self.endpoint != DEFAULT_ENDPOINT

    @property
    def passthrough(self) -> bool:
        """Lines are mirrored to stdout when verbose or when no endpoint is set."""
        return self.verbose or not self.has_endpoint

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level

    def resolved_endpoint(self) -> str:
        """Return the final write URL, or ``""`` when no endpoint is configured.

        Raises
        ------
        EndpointError
            If the configured endpoint cannot be parsed.
        """
        if not self.has_endpoint:
            return ""
        return resolve_endpoint(
            self.endpoint,
            user=self.user,
            password=self.password,
            host=self.host,
            dbname=self.dbname,
            ssl=self.ssl,
        )
