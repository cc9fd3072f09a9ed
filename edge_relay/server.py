import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
import uvicorn
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from edge_relay.config import ProxyConfig, load_config
from edge_relay.relay import create_backend_client
from edge_relay.routes import passthrough_router, router
from edge_relay.vars import HOST, OTLP_ENDPOINT, OTLP_HEADERS, PORT, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")


def is_chunk_span(span: ReadableSpan) -> bool:
    """True for the ASGI send span emitted for each relayed body chunk."""
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") == "http.response.body"


class ChunkSpanFilter(SpanExporter):
    """Keeps one span per relayed chat stream instead of one per chunk."""

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not is_chunk_span(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(ChunkSpanFilter(otlp_exporter))
    )

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the pooled backend client for the lifetime of the app."""
    config: ProxyConfig = app.state.proxy_config
    client = create_backend_client(config, app.state.backend_transport)
    app.state.backend_client = client
    logger.info(f"Relaying to backend {config.backend_url}")
    try:
        yield
    finally:
        await client.aclose()


def create_app(
    config: Optional[ProxyConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    enable_metrics: bool = True,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        config: Relay configuration; read from the environment when omitted
        transport: httpx transport for backend calls, e.g. a fake backend in tests
        enable_metrics: Expose Prometheus metrics on /metrics
    """
    app = FastAPI(title="edge-relay", lifespan=lifespan)
    app.state.proxy_config = config or load_config()
    app.state.backend_transport = transport

    if enable_metrics:
        Instrumentator().instrument(app).expose(app)

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls="/metrics",
        server_request_hook=None,
        client_request_hook=None,
    )

    app.include_router(router)
    if app.state.proxy_config.api_passthrough_enabled:
        # Registered last so the dedicated relays win
        app.include_router(passthrough_router)
    return app


app = create_app()


def main():
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
