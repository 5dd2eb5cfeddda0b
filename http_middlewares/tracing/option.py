"""
Options shared by the tracing transport and the tracing server handler

The option callables receive the request being traced: an ``httpx.Request``
on the client side, the WSGI environ on the server side. ``request_method``
and ``request_url`` read either of them.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
from wsgiref.util import request_uri

import httpx
from opentelemetry import trace
from opentelemetry.propagators.textmap import TextMapPropagator

from http_middlewares.telemetry.tracer import global_tracer

Request = Union[httpx.Request, Dict[str, Any]]

DEFAULT_COMPONENT_NAME = "net/http"


def request_method(request: Request) -> str:
    """Return the HTTP method of an ``httpx.Request`` or a WSGI environ."""
    if isinstance(request, httpx.Request):
        return request.method
    return request.get("REQUEST_METHOD", "GET")


def request_url(request: Request) -> httpx.URL:
    """Return the full URL of an ``httpx.Request`` or a WSGI environ."""
    if isinstance(request, httpx.Request):
        return request.url
    return httpx.URL(request_uri(request, include_query=True))


def default_component_name(request: Request) -> str:
    return DEFAULT_COMPONENT_NAME


def default_url_tag(url: httpx.URL) -> str:
    return str(url)


def default_span_filter(request: Request) -> bool:
    return False


def default_operation_name(request: Request) -> str:
    return f"HTTP {request_method(request)} {request_url(request).path}"


def default_span_observer(request: Request, span: trace.Span) -> None:
    pass


@dataclass
class Option:
    """Configuration of the tracing middlewares

    Every field is optional; ``init()`` fills the unset callables with their
    defaults and leaves the fields set by the caller untouched.

    For example, to tag the peer host name::

        Option(span_observer=lambda req, span: span.set_attribute(
            "net.peer.name", request_url(req).host))
    """
    # Default: the tracer of the global tracer provider
    tracer: Optional[trace.Tracer] = None

    # Default: component_name_func(request)
    component_name: str = ""

    # Used when component_name is empty. Default: "net/http"
    component_name_func: Optional[Callable[[Request], str]] = None

    # Value of the "http.url" attribute. Default: str(url)
    url_tag_func: Optional[Callable[[httpx.URL], str]] = None

    # Requests for which it returns True are not traced. Default: trace all
    span_filter: Optional[Callable[[Request], bool]] = None

    # Span name. Default: "HTTP {method} {path}"
    operation_name_func: Optional[Callable[[Request], str]] = None

    # Called with every new span to add extra attributes. Default: no-op
    span_observer: Optional[Callable[[Request, trace.Span], None]] = None

    # Header propagation format. Default: the global text map propagator
    propagator: Optional[TextMapPropagator] = None

    def init(self) -> "Option":
        """Fill unset callables with their defaults."""
        if self.component_name_func is None:
            self.component_name_func = default_component_name
        if self.url_tag_func is None:
            self.url_tag_func = default_url_tag
        if self.span_filter is None:
            self.span_filter = default_span_filter
        if self.span_observer is None:
            self.span_observer = default_span_observer
        if self.operation_name_func is None:
            self.operation_name_func = default_operation_name
        return self

    def get_component_name(self, request: Request) -> str:
        """Return component_name if set, or component_name_func(request)."""
        if not self.component_name:
            return self.component_name_func(request)
        return self.component_name

    def get_tracer(self) -> trace.Tracer:
        """Return the configured tracer, or the global one."""
        if self.tracer is not None:
            return self.tracer
        return global_tracer()
