"""
HTTP instrumentation middlewares

Distributed tracing and RED metrics for HTTP clients and servers:

1. tracing: OpenTelemetry span propagation for httpx transports (client) and
   WSGI applications (server), using the standard header propagation format
2. metrics: Prometheus request count and duration for WSGI applications
3. handler: the WSGI middleware primitives both are built on

Subpackages are imported explicitly, e.g. ``from http_middlewares.tracing import ServerHandler``.
"""

__version__ = "0.1.0"

from .handler import (
    ClosingIterable,
    Handler,
    Middleware,
    ResponseWriter,
    StatusCodeRecorder,
    compose,
    invoke,
    record_status_code,
    status_code_of,
)
from .exceptions import ConfigurationError, MiddlewareError

__all__ = [
    "__version__",
    "ClosingIterable",
    "Handler",
    "Middleware",
    "ResponseWriter",
    "StatusCodeRecorder",
    "compose",
    "invoke",
    "record_status_code",
    "status_code_of",
    "ConfigurationError",
    "MiddlewareError",
]
