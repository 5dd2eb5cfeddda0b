"""
HTTP tracing middlewares

- client: ``TracingTransport``, an httpx transport creating client spans and
  injecting their context into the request headers
- server: ``ServerHandler``, a WSGI handler extracting the caller's span
  context and creating server spans
- option: ``Option``, the configuration shared by both
"""

from .option import Option, request_method, request_url
from .client import TracingTransport, default_transport
from .server import (
    SPAN_ENVIRON_KEY,
    ServerHandler,
    TracedBody,
    middleware,
    record_status_start,
    span_from_environ,
    tag_status_code,
)

__all__ = [
    "Option",
    "request_method",
    "request_url",
    "TracingTransport",
    "default_transport",
    "SPAN_ENVIRON_KEY",
    "ServerHandler",
    "TracedBody",
    "middleware",
    "record_status_start",
    "span_from_environ",
    "tag_status_code",
]
