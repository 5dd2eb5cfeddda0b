"""
Prometheus metrics for WSGI applications

Counts the served requests and observes their durations, i.e. the rate and
duration parts of RED. Errors only show up through the "code" label.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from http_middlewares.exceptions import ConfigurationError
from http_middlewares.handler import (
    ClosingIterable,
    Environ,
    Handler,
    Middleware,
    StartResponse,
    WSGIApp,
    invoke,
    status_code_of,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTOGRAM_BUCKETS = (
    .005, .01, .025, .05, .075,
    .1, .25, .5, .75, 1,
    1.5, 2,
)


@dataclass
class MetricsOption:
    """Configuration of the metrics server handler"""
    # Default: prometheus_client.REGISTRY
    registry: Optional[CollectorRegistry] = None

    namespace: str = ""
    subsystem: str = ""

    # Default: DEFAULT_HISTOGRAM_BUCKETS
    buckets: Optional[Sequence[float]] = None

    # Enabled labels
    method: bool = True
    path: bool = False
    code: bool = True

    def label_names(self) -> List[str]:
        """Return the enabled labels, in the order method, path, code."""
        labels = []
        if self.method:
            labels.append("method")
        if self.path:
            labels.append("path")
        if self.code:
            labels.append("code")
        return labels

    def get_buckets(self) -> List[float]:
        """Return a copy of the histogram buckets, validated."""
        buckets = list(self.buckets) if self.buckets else list(DEFAULT_HISTOGRAM_BUCKETS)
        if any(lower >= upper for lower, upper in zip(buckets, buckets[1:])):
            raise ConfigurationError(f"Histogram buckets must be strictly ascending: {buckets}")
        return buckets

    def get_registry(self) -> CollectorRegistry:
        if self.registry is not None:
            return self.registry
        return REGISTRY


class ServerHandler(Handler):
    """
    WSGI handler recording Prometheus metrics of the wrapped application

    The metric vectors are created and registered on first use, exactly once
    even when the first requests arrive concurrently. The status code is read
    from start_response when it reports one (see ``StatusCodeRecorder``),
    otherwise 200 is recorded.
    """

    def __init__(self, app: Optional[WSGIApp] = None, option: Optional[MetricsOption] = None):
        super().__init__(app)
        self.option = option if option is not None else MetricsOption()

        self.labels: List[str] = []
        self.requests_total: Optional[Counter] = None
        self.request_durations: Optional[Histogram] = None

        self._init_lock = threading.Lock()
        self._initialized = False

    def init(self) -> None:
        """Create and register the metric vectors if not done yet."""
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return
            self._register()
            self._initialized = True

    def _register(self) -> None:
        option = self.option
        buckets = option.get_buckets()
        registry = option.get_registry()
        self.labels = option.label_names()

        requests_total = Counter(
            "http_requests_total",
            "The total number of the http requests",
            labelnames=self.labels,
            namespace=option.namespace,
            subsystem=option.subsystem,
            registry=None,
        )
        request_durations = Histogram(
            "http_request_duration_seconds",
            "The duration to handle the http request",
            labelnames=self.labels,
            namespace=option.namespace,
            subsystem=option.subsystem,
            registry=None,
            buckets=buckets,
        )

        # Both collectors are registered or neither is.
        registry.register(requests_total)
        try:
            registry.register(request_durations)
        except BaseException:
            registry.unregister(requests_total)
            raise
        self.requests_total = requests_total
        self.request_durations = request_durations

        logger.info(f"HTTP request metrics registered, labels: {self.labels}")

    def label_values(self, environ: Environ, start_response: StartResponse) -> Dict[str, str]:
        """Build the label values of a finished request."""
        values = {}
        for name in self.labels:
            if name == "method":
                values["method"] = environ.get("REQUEST_METHOD", "GET")
            elif name == "path":
                values["path"] = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
            elif name == "code":
                values["code"] = str(status_code_of(start_response))
        return values

    def observe(self, environ: Environ, start_response: StartResponse, start: float) -> None:
        """Count the request and observe its duration with the same labels."""
        duration = time.perf_counter() - start
        labels = self.label_values(environ, start_response)

        if labels:
            self.requests_total.labels(**labels).inc()
            self.request_durations.labels(**labels).observe(duration)
        else:
            self.requests_total.inc()
            self.request_durations.observe(duration)

    def serve(self, app: WSGIApp, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        self.init()

        start = time.perf_counter()
        try:
            body = invoke(app, environ, start_response)
        except BaseException:
            self.observe(environ, start_response, start)
            raise

        return ClosingIterable(body, lambda: self.observe(environ, start_response, start))


def middleware(option: Optional[MetricsOption] = None) -> Middleware:
    """Return a middleware recording metrics of the next application."""
    server_handler = ServerHandler(option=option)
    server_handler.init()

    def wrap(next_app: WSGIApp) -> WSGIApp:
        def wrapped(environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
            return server_handler.serve(next_app, environ, start_response)
        return wrapped

    return wrap
