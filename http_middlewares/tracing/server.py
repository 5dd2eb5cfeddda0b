"""
Tracing WSGI server handler

Extracts the span context from the headers of each incoming request, starts
a server span as its child (or as a root span when the headers carry none)
and exposes it to the wrapped application, both as the current
OpenTelemetry span and under ``SPAN_ENVIRON_KEY`` in the environ.
"""

import logging
from typing import Any, Callable, Iterable, Optional, Tuple

from opentelemetry import context, trace

from http_middlewares.handler import (
    ClosingIterable,
    Environ,
    Handler,
    Middleware,
    ResponseWriter,
    StartResponse,
    StatusCodeRecorder,
    WSGIApp,
    invoke,
)
from http_middlewares.telemetry.tracer import extract_environ, tracer_disabled
from http_middlewares.tracing import tags
from http_middlewares.tracing.option import Option, request_url

logger = logging.getLogger(__name__)

SPAN_ENVIRON_KEY = "http_middlewares.span"

StartHook = Callable[[Environ, StartResponse], Tuple[Environ, StartResponse]]
EndHook = Callable[[Environ, StartResponse, trace.Span], Any]


def span_from_environ(environ: Environ) -> Optional[trace.Span]:
    """Return the server span stored in the environ, if any."""
    return environ.get(SPAN_ENVIRON_KEY)


def record_status_start(environ: Environ, start_response: StartResponse) -> Tuple[Environ, StartResponse]:
    """Start hook wrapping start_response so the status code can be read later."""
    if not isinstance(start_response, ResponseWriter):
        start_response = StatusCodeRecorder(start_response)
    return environ, start_response


def tag_status_code(environ: Environ, start_response: StartResponse, span: trace.Span) -> None:
    """End hook setting the "http.status_code" attribute when it is known."""
    if isinstance(start_response, ResponseWriter) and start_response.status_code:
        span.set_attribute(tags.HTTP_STATUS_CODE, start_response.status_code)


class TracedBody(ClosingIterable):
    """Response body iterated and closed with the server span as current span.

    Errors raised while iterating are recorded on the span before they
    propagate to the server.
    """

    def __init__(self, iterable: Iterable[bytes], on_close: Callable[[], None],
                 span: trace.Span, span_context: context.Context):
        super().__init__(iterable, on_close)
        self.span = span
        self._context = span_context
        self._iterator = None

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        token = context.attach(self._context)
        try:
            if self._iterator is None:
                self._iterator = iter(self.iterable)
            return next(self._iterator)
        except StopIteration:
            raise
        except BaseException as exc:
            self.span.record_exception(exc)
            self.span.set_status(trace.Status(trace.StatusCode.ERROR, str(exc)))
            raise
        finally:
            context.detach(token)

    def close(self) -> None:
        token = context.attach(self._context)
        try:
            super().close()
        finally:
            context.detach(token)


class ServerHandler(Handler):
    """
    WSGI handler tracing the requests served by the wrapped application

    The span ends once the response body is closed by the server, or right
    away when the application raises. It ends exactly once in both cases.
    """

    def __init__(self,
                 app: Optional[WSGIApp] = None,
                 option: Optional[Option] = None,
                 start: Optional[StartHook] = None,
                 end: Optional[EndHook] = None):
        """Initialize the tracing server handler

        Args:
            app: Wrapped WSGI application
            option: Tracing option, initialized in place
            start: Called before tracing starts and may replace the environ
                and start_response, e.g. to record the status code. Skipped
                when the tracer is disabled.
            end: Called with the span when the request ends, e.g. to set
                the status code attribute. Skipped when the tracer is disabled.
        """
        super().__init__(app)
        self.option = option if option is not None else Option()
        self.option.init()
        self.start = start
        self.end = end

    def serve(self, app: WSGIApp, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        option = self.option
        if option.span_filter(environ):
            logger.debug(f"Tracing skipped for {environ.get('REQUEST_METHOD')} {environ.get('PATH_INFO')}")
            return invoke(app, environ, start_response)

        tracer = option.get_tracer()
        enabled = not tracer_disabled(tracer)
        if enabled and self.start is not None:
            environ, start_response = self.start(environ, start_response)

        parent = extract_environ(environ, propagator=option.propagator)
        span = tracer.start_span(
            option.operation_name_func(environ),
            context=parent,
            kind=trace.SpanKind.SERVER,
        )

        def finish() -> None:
            try:
                if enabled and self.end is not None:
                    self.end(environ, start_response, span)
            finally:
                span.end()

        token = None
        try:
            span.set_attribute(tags.HTTP_METHOD, environ.get("REQUEST_METHOD", "GET"))
            span.set_attribute(tags.COMPONENT, option.get_component_name(environ))
            span.set_attribute(tags.HTTP_URL, option.url_tag_func(request_url(environ)))
            option.span_observer(environ, span)

            environ[SPAN_ENVIRON_KEY] = span
            span_context = trace.set_span_in_context(span, parent)
            token = context.attach(span_context)
            body = invoke(app, environ, start_response)
        except BaseException as exc:
            span.record_exception(exc)
            span.set_status(trace.Status(trace.StatusCode.ERROR, str(exc)))
            finish()
            raise
        finally:
            if token is not None:
                context.detach(token)

        return TracedBody(body, finish, span, span_context)


def middleware(server_handler: ServerHandler) -> Middleware:
    """Return a middleware serving the next application through server_handler.

    The wrapped application of server_handler itself is not used.
    """
    server_handler.option.init()

    def wrap(next_app: WSGIApp) -> WSGIApp:
        def wrapped(environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
            return server_handler.serve(next_app, environ, start_response)
        return wrapped

    return wrap
