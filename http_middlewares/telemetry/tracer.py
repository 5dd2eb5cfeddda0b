"""
OpenTelemetry tracer setup and HTTP trace context propagation

Provides tracer configuration plus injection of trace context into outgoing
HTTP headers and extraction from the WSGI environ of incoming requests.
"""

import logging
from typing import Any, Dict, List, MutableMapping, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import get_global_textmap
from opentelemetry.propagators.textmap import Getter, TextMapPropagator
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from http_middlewares import __version__

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "http_middlewares"


def setup_tracer(service_name: str, otlp_endpoint: str = "localhost:4317") -> trace.Tracer:
    """Configure the global OpenTelemetry tracer provider

    Args:
        service_name: Service name
        otlp_endpoint: OTLP receiver address

    Returns:
        Tracer: A tracer from the newly installed provider
    """
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name}),
        sampler=ALWAYS_ON,
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    trace.set_tracer_provider(provider)

    logger.info(f"OpenTelemetry trace configured, service name: {service_name}, OTLP endpoint: {otlp_endpoint}")

    return trace.get_tracer(INSTRUMENTATION_NAME, __version__)


def global_tracer() -> trace.Tracer:
    """Return the tracer of the process-wide tracer provider."""
    return trace.get_tracer(INSTRUMENTATION_NAME, __version__)


def tracer_disabled(tracer: trace.Tracer) -> bool:
    """Whether the tracer never records spans, e.g. with OTEL_SDK_DISABLED set."""
    return isinstance(tracer, trace.NoOpTracer)


class EnvironGetter(Getter[Dict[str, Any]]):
    """Read HTTP request headers out of a WSGI environ for propagators."""

    def get(self, carrier: Dict[str, Any], key: str) -> Optional[List[str]]:
        value = carrier.get("HTTP_" + key.upper().replace("-", "_"))
        if value is None:
            return None
        return [value]

    def keys(self, carrier: Dict[str, Any]) -> List[str]:
        return [
            key[5:].lower().replace("_", "-")
            for key in carrier
            if key.startswith("HTTP_")
        ]


environ_getter = EnvironGetter()


def inject_headers(headers: MutableMapping[str, str],
                   context: Optional[Context] = None,
                   propagator: Optional[TextMapPropagator] = None) -> MutableMapping[str, str]:
    """Inject the trace context into HTTP request headers

    Args:
        headers: Header mapping of the outgoing request, modified in place
        context: Context holding the span to propagate (default: current context)
        propagator: Text map propagator (default: the global propagator)

    Returns:
        The same header mapping
    """
    if propagator is None:
        propagator = get_global_textmap()
    propagator.inject(headers, context=context)
    return headers


def extract_environ(environ: Dict[str, Any],
                    propagator: Optional[TextMapPropagator] = None) -> Context:
    """Extract the trace context from the headers of a WSGI request

    A missing or malformed trace header is not an error; the returned
    context then holds no parent span.

    Args:
        environ: WSGI environ of the incoming request
        propagator: Text map propagator (default: the global propagator)

    Returns:
        Context: The extracted context, detached from the current one
    """
    if propagator is None:
        propagator = get_global_textmap()

    context = propagator.extract(environ, context=Context(), getter=environ_getter)
    if not trace.get_current_span(context).get_span_context().is_valid:
        logger.debug("No parent span context in request headers, starting a root span")
    return context
