"""
OpenTelemetry tracing configuration.

Exporter is selected via the ``OTEL_EXPORTER`` setting:

- ``none``     — tracing disabled (default for library use)
- ``console``  — prints spans to stdout
- ``otlp``     — sends to any OTLP-compatible backend (Jaeger, Datadog, Grafana Cloud)

Additional settings for OTLP:
- ``OTEL_EXPORTER_OTLP_ENDPOINT`` — e.g. ``http://jaeger:4317``
- ``OTEL_SERVICE_NAME``           — defaults to ``asset-sink``

Nothing is installed on import: ``init_tracing()`` (called by
``Sink.from_settings``) registers the global tracer provider once. Until
then spans go to whatever provider the host application registered, or
are dropped.

Usage::

    from asset_sink.tracing import get_tracer
    tracer = get_tracer(__name__)

    with tracer.start_as_current_span("sink.get") as span:
        span.set_attribute("key", key)
        ...
"""
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.resources import Resource

from asset_sink.config import Settings, settings

_provider: Optional[TracerProvider] = None


def init_tracing(config: Settings = settings) -> TracerProvider:
    """Initialize the tracer provider with the configured exporter, once."""
    global _provider
    if _provider is not None:
        return _provider

    exporter_type = config.otel_exporter.lower()

    resource = Resource.create({"service.name": config.otel_service_name})
    provider = TracerProvider(resource=resource)

    if exporter_type == "none":
        pass  # No exporter: spans are created but dropped
    elif exporter_type == "otlp":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        exporter = OTLPSpanExporter(endpoint=config.otel_exporter_otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    else:
        from opentelemetry.sdk.trace.export import (
            SimpleSpanProcessor,
            ConsoleSpanExporter,
        )

        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer for *name*."""
    return trace.get_tracer(name)

