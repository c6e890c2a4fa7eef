"""influxin line routing — fans captured lines out to all configured sinks.

Sinks are pluggable consumers: the batch accumulator that forwards lines
to the ingestion endpoint, the passthrough sink that mirrors lines to the
operator, or any custom object implementing the BaseSink protocol.
"""
