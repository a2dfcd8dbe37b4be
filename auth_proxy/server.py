import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from opentelemetry import trace
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from auth_proxy.app_proxy.route import router as proxy_router
from auth_proxy.auth.credentials import CredentialVerifier
from auth_proxy.auth.gate import AuthGateMiddleware
from auth_proxy.auth.routes import PUBLIC_DIR, router as auth_router
from auth_proxy.health import HealthProber
from auth_proxy.health.routes import HEALTH_PATHS, router as health_router
from auth_proxy.session import SessionMiddleware, SessionStoreBase, session_store
from auth_proxy.utils.access_log import configure_access_logger
from auth_proxy.vars import (
    AUTH_PASS,
    AUTH_USER,
    BACKEND_PROBE_PATH,
    BACKEND_URL,
    METRICS_PATH,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PROXY_TIMEOUT,
    PROXY_VERIFY_TLS,
    SERVICE_NAME,
    validate_config,
)

logger = logging.getLogger("uvicorn.error")

try:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider, ReadableSpan
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        SpanExporter,
        SpanExportResult,
    )
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    _OTEL_AVAILABLE = True
except ImportError:  # pragma: no cover - tracing stays a no-op without the otel extra
    Resource = TracerProvider = ReadableSpan = BatchSpanProcessor = SpanExporter = SpanExportResult = None  # type: ignore
    FastAPIInstrumentor = OTLPSpanExporter = None  # type: ignore
    _OTEL_AVAILABLE = False


class FilteringSpanExporter(SpanExporter if _OTEL_AVAILABLE else object):
    """
    Wrapper exporter that drops the per-chunk ASGI body spans produced while
    streaming proxied downloads.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


# Configure tracing if OpenTelemetry SDK dependencies are available
if _OTEL_AVAILABLE:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )
        # Wrap exporter with filtering to remove noisy ASGI body spans
        trace.get_tracer_provider().add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = app.state
    validate_config(**state.settings)
    state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(PROXY_TIMEOUT),
        follow_redirects=False,  # Redirects go back to the client, rewritten
        verify=PROXY_VERIFY_TLS,
        transport=state.upstream_transport,
    )
    await state.health.start()
    logger.info(f"[Server] Proxying to {state.backend_url}")
    try:
        yield
    finally:
        await state.health.stop()
        await state.http_client.aclose()


def create_app(
    backend_url: str = BACKEND_URL,
    username: str = AUTH_USER,
    password: str = AUTH_PASS,
    sessions: Optional[SessionStoreBase] = None,
    health: Optional[HealthProber] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the proxy application. ``upstream_transport`` replaces the network
    for both forwarding and probing, which is how the tests stand in for the
    backend.
    """
    app = FastAPI(lifespan=lifespan)
    app.state.settings = {
        "backend_url": backend_url,
        "username": username,
        "password": password,
    }
    app.state.backend_url = backend_url
    app.state.sessions = sessions if sessions is not None else session_store()
    app.state.verifier = CredentialVerifier(username, password)
    if health is None:
        health = HealthProber(backend_url, BACKEND_PROBE_PATH, transport=upstream_transport)
    app.state.health = health
    app.state.upstream_transport = upstream_transport

    # Added last runs first: sessions are resolved before the gate looks at them
    app.add_middleware(AuthGateMiddleware, store=app.state.sessions, username=username)
    app.add_middleware(
        SessionMiddleware,
        store=app.state.sessions,
        sessionless_paths=(*HEALTH_PATHS, METRICS_PATH),
    )

    Instrumentator(excluded_handlers=[METRICS_PATH]).instrument(app).expose(
        app, endpoint=METRICS_PATH, include_in_schema=False
    )
    if _OTEL_AVAILABLE:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=METRICS_PATH)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.mount("/auth", StaticFiles(directory=PUBLIC_DIR), name="auth-assets")
    # Catch-all, must stay last
    app.include_router(proxy_router)
    return app


configure_access_logger()

app = create_app()

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})
