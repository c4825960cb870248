from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from app.core.config import Settings, get_settings


_exporters_installed = False
_provider: TracerProvider | None = None


def tracer_provider(settings: Settings | None = None, service_name: str | None = None) -> TracerProvider:
    """Return the process-wide provider, creating it from settings on first use."""
    global _provider

    if _provider is None:
        settings = settings or get_settings()
        resource = Resource.create(
            {
                "service.name": service_name or settings.otel_service_name,
                "service.version": settings.app_version,
                "deployment.environment": settings.app_env,
            }
        )
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings | None = None) -> TracerProvider | None:
    global _exporters_installed

    settings = settings or get_settings()
    if not settings.otel_enabled:
        return None

    provider = tracer_provider(settings)
    if _exporters_installed:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _exporters_installed = True
    return provider


def setup_inmemory_otel(service_name: str | None = None) -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    tracer_provider(service_name=service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_fastapi_server_request_hook(settings: Settings | None = None):
    header = (settings or get_settings()).correlation_header.lower().encode("latin-1")

    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        raw = dict(scope.get("headers", [])).get(header)
        if raw:
            span.set_attribute("correlation_id", raw.decode("latin-1"))

    return server_request_hook
