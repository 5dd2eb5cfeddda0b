"""
Exceptions raised by the middlewares themselves.

Errors raised by a wrapped transport or WSGI application are never wrapped
in these types; they reach the caller unchanged.
"""


class MiddlewareError(RuntimeError):
    """Base class for errors raised by http_middlewares."""


class ConfigurationError(MiddlewareError, ValueError):
    """Raised when an option or environment setting is invalid."""
