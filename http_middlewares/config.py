"""
Configuration settings for the HTTP middlewares
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from http_middlewares.exceptions import ConfigurationError
from http_middlewares.metrics.server import MetricsOption
from http_middlewares.telemetry.tracer import setup_tracer
from http_middlewares.tracing.option import Option

logger = logging.getLogger(__name__)

METRIC_LABELS = ("method", "path", "code")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default

    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")


def _env_labels(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)

    labels = [label.strip() for label in value.split(",") if label.strip()]
    unknown = [label for label in labels if label not in METRIC_LABELS]
    if unknown:
        raise ConfigurationError(f"Unknown metric labels in {name}: {unknown}")
    return labels


def _env_buckets(name: str, default: Optional[List[float]]) -> Optional[List[float]]:
    value = os.getenv(name)
    if not value:
        return default

    try:
        return [float(bound) for bound in value.split(",") if bound.strip()]
    except ValueError as e:
        raise ConfigurationError(f"Invalid histogram buckets in {name}: {value!r}") from e


@dataclass
class TelemetryConfig:
    """Telemetry settings of a service using the middlewares"""
    service_name: str = "http_middlewares"
    otlp_endpoint: str = "localhost:4317"
    enable_tracing: bool = True

    # Tracing
    component_name: str = ""

    # Metrics
    metrics_namespace: str = ""
    metrics_subsystem: str = ""
    metrics_labels: List[str] = field(default_factory=lambda: ["method", "code"])
    metrics_buckets: Optional[List[float]] = None

    def __post_init__(self):
        unknown = [label for label in self.metrics_labels if label not in METRIC_LABELS]
        if unknown:
            raise ConfigurationError(f"Unknown metric labels: {unknown}")

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        """Create config from environment variables"""
        default = cls()
        return cls(
            service_name=os.getenv("OTEL_SERVICE_NAME", default.service_name),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", default.otlp_endpoint),
            enable_tracing=_env_bool("HTTP_MIDDLEWARES_TRACING", default.enable_tracing),
            component_name=os.getenv("HTTP_MIDDLEWARES_COMPONENT", default.component_name),
            metrics_namespace=os.getenv("HTTP_MIDDLEWARES_METRICS_NAMESPACE", default.metrics_namespace),
            metrics_subsystem=os.getenv("HTTP_MIDDLEWARES_METRICS_SUBSYSTEM", default.metrics_subsystem),
            metrics_labels=_env_labels("HTTP_MIDDLEWARES_METRICS_LABELS", default.metrics_labels),
            metrics_buckets=_env_buckets("HTTP_MIDDLEWARES_METRICS_BUCKETS", default.metrics_buckets),
        )

    @classmethod
    def default(cls) -> "TelemetryConfig":
        """Create default configuration"""
        return cls()

    def setup_tracer(self) -> trace.Tracer:
        """Install the global tracer provider, or return a no-op tracer if tracing is disabled"""
        if not self.enable_tracing:
            logger.info(f"Tracing disabled for service {self.service_name}")
            return trace.NoOpTracer()
        return setup_tracer(self.service_name, self.otlp_endpoint)

    def tracing_option(self, **kwargs: Any) -> Option:
        """Build the tracing option; keyword arguments override the config.

        With tracing disabled the option gets a no-op tracer, so no span is
        recorded and the start and end hooks of ServerHandler are skipped.
        """
        kwargs.setdefault("component_name", self.component_name)
        if not self.enable_tracing:
            kwargs.setdefault("tracer", trace.NoOpTracer())
        return Option(**kwargs).init()

    def metrics_option(self, **kwargs: Any) -> MetricsOption:
        """Build the metrics option; keyword arguments override the config."""
        kwargs.setdefault("namespace", self.metrics_namespace)
        kwargs.setdefault("subsystem", self.metrics_subsystem)
        kwargs.setdefault("buckets", self.metrics_buckets)
        for label in METRIC_LABELS:
            kwargs.setdefault(label, label in self.metrics_labels)
        return MetricsOption(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "service_name": self.service_name,
            "otlp_endpoint": self.otlp_endpoint,
            "enable_tracing": self.enable_tracing,
            "component_name": self.component_name,
            "metrics_namespace": self.metrics_namespace,
            "metrics_subsystem": self.metrics_subsystem,
            "metrics_labels": list(self.metrics_labels),
            "metrics_buckets": self.metrics_buckets,
        }
