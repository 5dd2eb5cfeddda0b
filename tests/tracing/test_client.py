"""
Tests for the tracing httpx transport
"""
from unittest.mock import MagicMock, patch

import httpx
import pytest
from opentelemetry import trace

from http_middlewares.tracing import tags
from http_middlewares.tracing.client import TracingTransport, default_transport
from http_middlewares.tracing.option import Option


@pytest.fixture
def seen_requests():
    return []


@pytest.fixture
def backend(seen_requests):
    """Mock transport recording requests and the span active while sending"""
    def handler(request):
        seen_requests.append((request, trace.get_current_span()))
        return httpx.Response(200, text="ok")

    return httpx.MockTransport(handler)


@pytest.fixture
def option(tracer, propagator):
    return Option(tracer=tracer, propagator=propagator)


class TestTracingTransport:
    """Test spans created for outgoing requests"""

    def test_root_client_span(self, backend, option, span_exporter):
        """A request without an active span gets a tagged root client span"""
        with httpx.Client(transport=TracingTransport(backend, option)) as client:
            response = client.get("http://example.com/widgets/42?full=1")

        assert response.status_code == 200
        spans = span_exporter.get_finished_spans()
        assert len(spans) == 1

        span = spans[0]
        assert span.name == "HTTP GET /widgets/42"
        assert span.kind == trace.SpanKind.CLIENT
        assert span.parent is None
        assert span.attributes[tags.HTTP_URL] == "http://example.com/widgets/42?full=1"
        assert span.attributes[tags.COMPONENT] == "net/http"
        assert span.attributes[tags.HTTP_METHOD] == "GET"
        assert span.attributes[tags.HTTP_STATUS_CODE] == 200

    def test_child_of_active_span(self, backend, option, tracer, span_exporter):
        """The client span is a child of the span active in the caller"""
        with tracer.start_as_current_span("caller") as caller:
            with httpx.Client(transport=TracingTransport(backend, option)) as client:
                client.post("http://example.com/orders")

        client_span = next(s for s in span_exporter.get_finished_spans() if s.name == "HTTP POST /orders")
        assert client_span.parent.span_id == caller.get_span_context().span_id
        assert client_span.context.trace_id == caller.get_span_context().trace_id
        assert client_span.kind == trace.SpanKind.CLIENT

    def test_injects_span_context(self, backend, option, seen_requests, span_exporter):
        """The outgoing headers carry the context of the client span"""
        with httpx.Client(transport=TracingTransport(backend, option)) as client:
            client.get("http://example.com/")

        request, _ = seen_requests[0]
        span = span_exporter.get_finished_spans()[0]
        version, trace_id, span_id, _ = request.headers["traceparent"].split("-")
        assert version == "00"
        assert trace_id == format(span.context.trace_id, "032x")
        assert span_id == format(span.context.span_id, "016x")

    def test_span_active_during_send(self, backend, option, seen_requests, span_exporter):
        """The wrapped transport runs with the client span as current span"""
        with httpx.Client(transport=TracingTransport(backend, option)) as client:
            client.get("http://example.com/")

        _, active = seen_requests[0]
        span = span_exporter.get_finished_spans()[0]
        assert active.get_span_context().span_id == span.context.span_id
        assert not trace.get_current_span().get_span_context().is_valid

    def test_filtered_request(self, backend, tracer, propagator, seen_requests, span_exporter):
        """Filtered requests are sent untouched and create no span"""
        option = Option(tracer=tracer, propagator=propagator,
                        span_filter=lambda request: request.url.path == "/health")
        with httpx.Client(transport=TracingTransport(backend, option)) as client:
            client.get("http://example.com/health")

        request, _ = seen_requests[0]
        assert "traceparent" not in request.headers
        assert len(span_exporter.get_finished_spans()) == 0

    def test_observer_and_custom_functions(self, backend, tracer, propagator, span_exporter):
        option = Option(
            tracer=tracer,
            propagator=propagator,
            component_name="billing-client",
            operation_name_func=lambda request: f"call {request.url.host}",
            url_tag_func=lambda url: f"{url.scheme}://{url.host}{url.path}",
            span_observer=lambda request, span: span.set_attribute("peer.host", request.url.host),
        )
        with httpx.Client(transport=TracingTransport(backend, option)) as client:
            client.get("http://billing.internal/invoices?token=secret")

        span = span_exporter.get_finished_spans()[0]
        assert span.name == "call billing.internal"
        assert span.attributes[tags.COMPONENT] == "billing-client"
        assert span.attributes[tags.HTTP_URL] == "http://billing.internal/invoices"
        assert span.attributes["peer.host"] == "billing.internal"

    def test_transport_error_propagates(self, option, span_exporter):
        """Transport errors reach the caller unchanged and the span still ends once"""
        error = httpx.ConnectError("connection refused")

        def handler(request):
            raise error

        transport = TracingTransport(httpx.MockTransport(handler), option)
        with pytest.raises(httpx.ConnectError) as excinfo:
            transport.handle_request(httpx.Request("GET", "http://down.example.com/"))

        assert excinfo.value is error
        spans = span_exporter.get_finished_spans()
        assert len(spans) == 1
        assert spans[0].status.status_code == trace.StatusCode.ERROR
        assert spans[0].events[0].name == "exception"

    def test_span_ends_exactly_once(self, backend, tracer, propagator):
        """Every traced request ends its span exactly once"""
        span = MagicMock()
        mock_tracer = MagicMock()
        mock_tracer.start_span.return_value = span
        transport = TracingTransport(backend, Option(tracer=mock_tracer, propagator=propagator))

        transport.handle_request(httpx.Request("GET", "http://example.com/"))

        span.end.assert_called_once()


class TestDefaultTransport:
    """Test the fallback transport"""

    def test_default_transport_is_shared(self):
        assert default_transport() is default_transport()
        assert isinstance(default_transport(), httpx.HTTPTransport)

    def test_unwrapped_transport_uses_default(self, option):
        fallback = MagicMock()
        fallback.handle_request.return_value = httpx.Response(204)
        transport = TracingTransport(option=option)

        with patch("http_middlewares.tracing.client.default_transport", return_value=fallback):
            response = transport.handle_request(httpx.Request("GET", "http://example.com/"))

        assert response.status_code == 204
        assert transport.wrapped_transport() is None
        fallback.handle_request.assert_called_once()

    def test_close_closes_wrapped_transport(self, option):
        inner = MagicMock()
        TracingTransport(inner, option).close()
        inner.close.assert_called_once_with()
