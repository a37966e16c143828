"""
Sakila OpenTelemetry Setup

Optional tracing for the rental engine:
- One span per coordinator action (create, pay, cancel, return, ...)
- Rental id, action and outcome recorded as span attributes
"""
from __future__ import annotations
from contextlib import contextmanager, nullcontext
from typing import Any, Iterator, Optional
import os


def setup_otel(
    service_name: str = "sakila-rentals",
    endpoint: Optional[str] = None,
):
    """Initialize OpenTelemetry with OTLP exporter."""
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource

        resource = Resource.create({"service.name": service_name})
        provider = TracerProvider(resource=resource)

        otlp_endpoint = endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
            provider.add_span_processor(BatchSpanProcessor(exporter))

        trace.set_tracer_provider(provider)
        return trace.get_tracer(service_name)

    except ImportError:
        # Tracing is optional; without the SDK there is simply no tracer
        return None


def action_span(tracer, action: str, **attributes: Any):
    """Span for a rental action, or a no-op context when tracing is off."""
    if tracer is None:
        return nullcontext()
    return _span(tracer, action, attributes)


@contextmanager
def _span(tracer, action: str, attributes: dict[str, Any]) -> Iterator[Any]:
    attrs = {"rental.action": action}
    attrs.update({f"rental.{k}": v for k, v in attributes.items() if v is not None})
    with tracer.start_as_current_span(f"rental.{action}", attributes=attrs) as span:
        yield span
