"""
Shared WSGI middleware primitives

A middleware is a function that takes a WSGI application and returns a new
one. ``Handler`` is the extended handler used by the tracing and metrics
wrappers: it can be called as a plain WSGI application or through
``handle_http``, the form used when handlers are composed, and both go
through the same ``serve`` method.
"""

import abc
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, runtime_checkable

Environ = Dict[str, Any]
StartResponse = Callable[..., Any]
WSGIApp = Callable[[Environ, StartResponse], Iterable[bytes]]
Middleware = Callable[[WSGIApp], WSGIApp]


@runtime_checkable
class ResponseWriter(Protocol):
    """A ``start_response`` callable which also reports the status code."""

    status_code: Optional[int]

    def __call__(self, status: str, response_headers: Any, exc_info: Any = None) -> Any:
        ...


class StatusCodeRecorder:
    """Wrap ``start_response`` and remember the numeric status code.

    Every call is forwarded unchanged. ``status_code`` stays ``None`` until
    the application starts the response.
    """

    def __init__(self, start_response: StartResponse):
        self.start_response = start_response
        self.status_code: Optional[int] = None

    def __call__(self, status: str, response_headers: Any, exc_info: Any = None) -> Any:
        self.status_code = int(status.split(" ", 1)[0])
        if exc_info is None:
            return self.start_response(status, response_headers)
        return self.start_response(status, response_headers, exc_info)


def status_code_of(start_response: StartResponse, default: int = 200) -> int:
    """Return the status code exposed by ``start_response``, or ``default``."""
    if isinstance(start_response, ResponseWriter) and start_response.status_code:
        return start_response.status_code
    return default


class ClosingIterable:
    """A WSGI response body that runs a callback once the body is closed.

    ``close()`` of the wrapped body is forwarded first; ``on_close`` runs
    afterwards even if that raises, and never more than once.
    """

    def __init__(self, iterable: Iterable[bytes], on_close: Callable[[], None]):
        self.iterable = iterable
        self._on_close = on_close
        self._closed = False

    def __iter__(self):
        return iter(self.iterable)

    def __len__(self) -> int:
        # Raises TypeError like len() does when the body has no length.
        return len(self.iterable)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        try:
            close = getattr(self.iterable, "close", None)
            if close is not None:
                close()
        finally:
            self._on_close()


class Handler(abc.ABC):
    """Extended WSGI handler wrapping another WSGI application."""

    def __init__(self, app: Optional[WSGIApp] = None):
        self.app = app

    def wrapped_handler(self) -> Optional[WSGIApp]:
        """Return the wrapped WSGI application."""
        return self.app

    @abc.abstractmethod
    def serve(self, app: WSGIApp, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        """Serve the request with ``app``.

        Args:
            app: The WSGI application which produces the response
            environ: WSGI environ of the request
            start_response: WSGI start_response callable

        Returns:
            The response body returned by ``app``, possibly wrapped
        """

    def handle_http(self, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        """Serve the request when composed with other handlers.

        Exceptions raised by the wrapped application propagate to the caller.
        """
        return self.serve(self.app, environ, start_response)

    def __call__(self, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        return self.serve(self.app, environ, start_response)


def invoke(app: WSGIApp, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
    """Call ``app`` through ``handle_http`` if it is a ``Handler``."""
    if isinstance(app, Handler):
        return app.handle_http(environ, start_response)
    return app(environ, start_response)


def compose(app: WSGIApp, *middlewares: Middleware) -> WSGIApp:
    """Wrap ``app`` with ``middlewares``, the first one being the outermost.

    Args:
        app: The innermost WSGI application
        middlewares: Middlewares to apply

    Returns:
        The composed WSGI application
    """
    for middleware in reversed(middlewares):
        app = middleware(app)
    return app


def record_status_code(app: WSGIApp) -> WSGIApp:
    """Middleware which exposes the response status code to inner layers.

    ``start_response`` is wrapped in a ``StatusCodeRecorder`` unless it
    already reports a status code.
    """
    def wrapped(environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        if not isinstance(start_response, ResponseWriter):
            start_response = StatusCodeRecorder(start_response)
        return invoke(app, environ, start_response)

    return wrapped
