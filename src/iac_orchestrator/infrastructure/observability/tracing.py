"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
)
from opentelemetry.semconv.resource import ResourceAttributes

from iac_orchestrator.config import ObservabilitySettings


def setup_tracing(settings: ObservabilitySettings, console: bool = False) -> None:
    """Configure OpenTelemetry tracing.

    Spans go to the OTLP collector when the exporter package is installed;
    ``console`` additionally prints them, which is only useful when debugging.
    """
    if not settings.tracing_enabled:
        return

    resource = Resource.create({
        ResourceAttributes.SERVICE_NAME: settings.service_name,
        ResourceAttributes.SERVICE_VERSION: "1.0.0",
    })

    provider = TracerProvider(resource=resource)

    if console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    # OTLP exporter is an optional extra
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
    except ImportError:
        pass

    trace.set_tracer_provider(provider)


def get_tracer(name: str = "iac_orchestrator") -> trace.Tracer:
    """Get a tracer instance."""
    return trace.get_tracer(name)


@contextmanager
def traced(span_name: str, /, **attributes: str | int | bool) -> Iterator[trace.Span]:
    """Run a block inside a span named ``span_name`` carrying ``attributes``."""
    with get_tracer().start_as_current_span(span_name) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)
        yield span
