"""influxin: supervise metric-emitting commands and ship their output to InfluxDB.

Each configured command runs as a child process.  Lines it prints on stdout
are fanned out to every configured sink:
  - the batch accumulator, which groups lines into size/time-bounded
    batches and POSTs them to the InfluxDB write endpoint
  - the passthrough sink, which mirrors lines to the operator's stdout

Children are restarted when they exit; with ``--fatal`` a failing child
terminates the whole agent.
"""

__version__ = "0.1.0"
__description__ = "Process supervisor that batches line-protocol output to InfluxDB"

from influxin.config import AgentSettings
from influxin.core.agent import Agent

__all__ = ["Agent", "AgentSettings", "__version__"]
