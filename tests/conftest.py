"""
Shared fixtures for the middleware tests
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple
from wsgiref.util import setup_testing_defaults

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from prometheus_client import CollectorRegistry


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """In-memory exporter collecting finished spans"""
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter) -> TracerProvider:
    """SDK tracer provider exporting synchronously to span_exporter"""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def tracer(tracer_provider):
    return tracer_provider.get_tracer("tests")


@pytest.fixture
def propagator() -> TraceContextTextMapPropagator:
    return TraceContextTextMapPropagator()


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated Prometheus registry per test"""
    return CollectorRegistry()


@pytest.fixture
def make_environ():
    """Build a WSGI environ for a request"""
    def _make_environ(method: str = "GET",
                      path: str = "/",
                      query: str = "",
                      headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        environ = {
            "REQUEST_METHOD": method,
            "PATH_INFO": path,
            "QUERY_STRING": query,
            "HTTP_HOST": "example.com",
        }
        for name, value in (headers or {}).items():
            environ["HTTP_" + name.upper().replace("-", "_")] = value
        setup_testing_defaults(environ)
        return environ

    return _make_environ


class StartResponseSpy:
    """Plain start_response recording its calls"""

    def __init__(self):
        self.calls: List[Tuple[str, List[Tuple[str, str]]]] = []

    def __call__(self, status, response_headers, exc_info=None):
        self.calls.append((status, list(response_headers)))
        return lambda data: None

    @property
    def status(self) -> Optional[str]:
        return self.calls[-1][0] if self.calls else None


@pytest.fixture
def start_response() -> StartResponseSpy:
    return StartResponseSpy()


@pytest.fixture
def run_app():
    """Run a WSGI app the way a server does: iterate the body, then close it"""
    def _run_app(app, environ, start_response) -> bytes:
        body: Iterable[bytes] = app(environ, start_response)
        try:
            return b"".join(body)
        finally:
            close = getattr(body, "close", None)
            if close is not None:
                close()

    return _run_app


def make_app(status: str = "200 OK", body: bytes = b"ok"):
    """WSGI app answering every request with status and body"""
    def app(environ, start_response):
        start_response(status, [("Content-Type", "text/plain")])
        return [body]

    return app


@pytest.fixture
def simple_app():
    return make_app


@pytest.fixture
def failing_app():
    """WSGI app raising before it starts the response"""
    def app(environ, start_response):
        raise RuntimeError("handler failed")

    return app
