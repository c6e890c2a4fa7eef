"""Bridge to the remote ingestion endpoint.

Modules
-------
endpoint
    Endpoint URL resolution and ``requests`` session construction.
submitter
    Worker pool that POSTs batch payloads to the endpoint.
"""

from influxin.bridge.endpoint import (
    DEFAULT_ENDPOINT,
    TEMPLATE_ENDPOINT,
    make_http_client,
    resolve_endpoint,
)
from influxin.bridge.submitter import SubmissionError, Submitter

__all__ = [
    "DEFAULT_ENDPOINT",
    "TEMPLATE_ENDPOINT",
    "make_http_client",
    "resolve_endpoint",
    "SubmissionError",
    "Submitter",
]
