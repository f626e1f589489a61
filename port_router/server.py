import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Info
from prometheus_fastapi_instrumentator import Instrumentator

from port_router.app_proxy.route import router as proxy_router
from port_router.app_proxy.upstream import create_client
from port_router.models import RouterConfig, load_config
from port_router.routes import router as selector_router
from port_router.vars import (
    CONFIG_FILE,
    METRICS_PATH,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PROXY_SEGMENT,
    PROXY_TIMEOUT,
    SERVICE_NAME,
)

logger = logging.getLogger("uvicorn.error")

_tracing_configured = False


def configure_tracing() -> None:
    """Install the process-wide tracer provider once; export only when OTLP is configured."""
    global _tracing_configured
    if _tracing_configured:
        return
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=OTLP_HEADERS or None,
        )
        trace.get_tracer_provider().add_span_processor(BatchSpanProcessor(otlp_exporter))
    _tracing_configured = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the shared upstream client for the lifetime of the application."""
    config: RouterConfig = app.state.config
    logger.info(f"Port router listening for {len(config.targets)} targets on port {config.router_port}")
    for target in config.targets:
        logger.info(
            f"  - {target.name} (localhost:{target.port}) at "
            f"{target.proxy_prefix(PROXY_SEGMENT)}/: {target.description}"
        )
    async with create_client(PROXY_TIMEOUT, transport=app.state.transport) as client:
        app.state.http_client = client
        yield


def create_app(
    config: Optional[RouterConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the router application.

    Args:
        config: target registry; loaded from CONFIG_FILE when omitted.
        transport: optional httpx transport for the upstream client.
    """
    if config is None:
        config = load_config(CONFIG_FILE)

    # No docs routes: every path outside the selector belongs to a backend
    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    app.state.transport = transport

    registry = CollectorRegistry()
    Instrumentator(registry=registry).instrument(app).expose(
        app, endpoint=METRICS_PATH, include_in_schema=False
    )
    app_info = Info("port_router_app_info", "Application Info", registry=registry)
    app_info.info({"app_name": SERVICE_NAME, "proxy_segment": PROXY_SEGMENT})

    configure_tracing()
    FastAPIInstrumentor.instrument_app(app)

    app.include_router(selector_router)
    # Catch-all fallback route lives here, so it must come last
    app.include_router(proxy_router)
    return app
