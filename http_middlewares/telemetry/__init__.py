"""
OpenTelemetry Integration Module

Provides tracer setup and trace context propagation over HTTP headers:
- tracer: tracer configuration, header injection and WSGI environ extraction

The tracing middlewares resolve the global tracer and propagator here only.
"""

from .tracer import (
    setup_tracer,
    global_tracer,
    tracer_disabled,
    inject_headers,
    extract_environ,
    EnvironGetter,
)

__all__ = [
    "setup_tracer",
    "global_tracer",
    "tracer_disabled",
    "inject_headers",
    "extract_environ",
    "EnvironGetter",
]
