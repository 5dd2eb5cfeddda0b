"""
HTTP metrics middlewares

- server: ``ServerHandler``, a WSGI handler counting requests and observing
  their durations with prometheus_client
"""

from .server import DEFAULT_HISTOGRAM_BUCKETS, MetricsOption, ServerHandler, middleware

__all__ = [
    "DEFAULT_HISTOGRAM_BUCKETS",
    "MetricsOption",
    "ServerHandler",
    "middleware",
]
