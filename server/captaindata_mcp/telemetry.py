from contextlib import contextmanager
from typing import Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

_provider: TracerProvider | None = None
tracer = trace.get_tracer("captaindata_mcp")


def configure_telemetry(service_name: str, endpoint: str, api_key: str | None) -> None:
    """Export spans over OTLP/HTTP. The Datadog key header is only sent when set."""
    global _provider
    _provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        headers={"DD-API-KEY": api_key} if api_key else None,
    )
    _provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(_provider)
    HTTPXClientInstrumentor().instrument()


def telemetry_enabled() -> bool:
    return _provider is not None


def instrument_fastapi(app) -> None:
    FastAPIInstrumentor.instrument_app(app)


@contextmanager
def tool_span(alias: str, request_id: str) -> Iterator[trace.Span]:
    with tracer.start_as_current_span(f"tool.{alias}") as span:
        span.set_attribute("captaindata.tool", alias)
        span.set_attribute("captaindata.request_id", request_id)
        yield span


def shutdown_telemetry() -> None:
    global _provider
    provider, _provider = _provider, None
    if provider is not None:
        provider.shutdown()
