"""
Tracing httpx transport

Wraps an outgoing httpx transport: each request gets a client span, child
of the span active in the current context if any, whose context is injected
into the request headers before the request is sent.
"""

import logging
import threading
from typing import Optional

import httpx
from opentelemetry import context, trace

from http_middlewares.telemetry.tracer import inject_headers
from http_middlewares.tracing import tags
from http_middlewares.tracing.option import Option

logger = logging.getLogger(__name__)

_default_transport: Optional[httpx.BaseTransport] = None
_default_transport_lock = threading.Lock()


def default_transport() -> httpx.BaseTransport:
    """Return the process-wide transport used when none is wrapped."""
    global _default_transport

    with _default_transport_lock:
        if _default_transport is None:
            _default_transport = httpx.HTTPTransport()
        return _default_transport


class TracingTransport(httpx.BaseTransport):
    """
    httpx transport tracing every request it sends

    Usage::

        client = httpx.Client(transport=TracingTransport(httpx.HTTPTransport()))
    """

    def __init__(self,
                 transport: Optional[httpx.BaseTransport] = None,
                 option: Optional[Option] = None):
        """Initialize the tracing transport

        Args:
            transport: Transport sending the requests (default: a process-wide httpx.HTTPTransport)
            option: Tracing option, initialized in place
        """
        self.transport = transport
        self.option = option if option is not None else Option()
        self.option.init()

    def wrapped_transport(self) -> Optional[httpx.BaseTransport]:
        """Return the wrapped transport."""
        return self.transport

    def _send(self, request: httpx.Request) -> httpx.Response:
        transport = self.transport
        if transport is None:
            transport = default_transport()
        return transport.handle_request(request)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        option = self.option
        if option.span_filter(request):
            logger.debug(f"Tracing skipped for {request.method} {request.url}")
            return self._send(request)

        parent = context.get_current()
        span = option.get_tracer().start_span(
            option.operation_name_func(request),
            context=parent,
            kind=trace.SpanKind.CLIENT,
        )

        # use_span ends the span on every exit and re-raises transport errors.
        with trace.use_span(span, end_on_exit=True):
            span.set_attribute(tags.HTTP_URL, option.url_tag_func(request.url))
            span.set_attribute(tags.COMPONENT, option.get_component_name(request))
            span.set_attribute(tags.HTTP_METHOD, request.method)
            option.span_observer(request, span)

            inject_headers(request.headers,
                           context=trace.set_span_in_context(span, parent),
                           propagator=option.propagator)

            response = self._send(request)
            span.set_attribute(tags.HTTP_STATUS_CODE, response.status_code)
            return response

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
