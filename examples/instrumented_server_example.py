#!/usr/bin/env python
"""
Instrumented WSGI Server Example

Serves a small WSGI application with tracing and Prometheus metrics, and
calls it once through a traced httpx client. Metrics are exposed on /metrics.

Configuration comes from the environment, see TelemetryConfig.from_env().
"""

import logging
import threading
from wsgiref.simple_server import make_server

import httpx
from prometheus_client import make_wsgi_app

from http_middlewares.config import TelemetryConfig
from http_middlewares.handler import compose, record_status_code
from http_middlewares.metrics import middleware as metrics_middleware
from http_middlewares.tracing import (
    ServerHandler,
    TracingTransport,
    middleware as tracing_middleware,
    record_status_start,
    span_from_environ,
    tag_status_code,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

metrics_app = make_wsgi_app()


def widgets_app(environ, start_response):
    """Answer /widgets/<id>; only widget 1 exists"""
    if environ["PATH_INFO"] == "/metrics":
        return metrics_app(environ, start_response)

    span = span_from_environ(environ)
    if span is not None:
        span.set_attribute("widget.path", environ["PATH_INFO"])

    if environ["PATH_INFO"] == "/widgets/1":
        start_response("200 OK", [("Content-Type", "text/plain")])
        return [b"widget 1\n"]

    start_response("404 Not Found", [("Content-Type", "text/plain")])
    return [b"no such widget\n"]


def main():
    config = TelemetryConfig.from_env()
    tracer = config.setup_tracer()

    tracing_option = config.tracing_option(
        tracer=tracer,
        span_filter=lambda environ: environ.get("PATH_INFO") == "/metrics",
    )
    server_handler = ServerHandler(option=tracing_option, start=record_status_start, end=tag_status_code)

    app = compose(
        widgets_app,
        record_status_code,
        metrics_middleware(config.metrics_option()),
        tracing_middleware(server_handler),
    )

    with make_server("127.0.0.1", 0, app) as server:
        port = server.server_port
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        logger.info(f"Serving on http://127.0.0.1:{port}")

        transport = TracingTransport(httpx.HTTPTransport(), config.tracing_option(tracer=tracer))
        with httpx.Client(transport=transport, base_url=f"http://127.0.0.1:{port}") as client:
            for path in ("/widgets/1", "/widgets/42"):
                response = client.get(path)
                logger.info(f"GET {path} -> {response.status_code}")

            metrics = client.get("/metrics").text
            for line in metrics.splitlines():
                if line.startswith("http_request"):
                    logger.info(line)

        server.shutdown()


if __name__ == "__main__":
    main()
