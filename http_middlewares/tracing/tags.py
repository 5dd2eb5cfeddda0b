"""Span attribute keys set by the tracing middlewares."""

HTTP_URL = "http.url"
HTTP_METHOD = "http.method"
HTTP_STATUS_CODE = "http.status_code"
COMPONENT = "component"
