"""Tenant LLM Gateway - Main Application."""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from contextlib import asynccontextmanager
import logging
import sys

from tenant_gateway.core.config import settings
from tenant_gateway.logging_hardening import setup_logging_redaction

# Initialize logging redaction filters early
setup_logging_redaction(settings.LOG_LEVEL)

logger = logging.getLogger(__name__)

from tenant_gateway.api.auth import router as auth_router
from tenant_gateway.api.public_ai import router as ai_router
from tenant_gateway.api.realtime import router as realtime_router
from tenant_gateway.bootstrap import seed_store, startup_seed
from tenant_gateway.dependencies import get_state_store
from tenant_gateway.errors import GatewayError, MalformedRequest, error_body
from tenant_gateway.middleware.request_id import RequestIdMiddleware
from tenant_gateway.middleware.shutdown_gate import ShutdownGateMiddleware
from tenant_gateway.routers import health


async def verify_startup(app_settings) -> None:
    """Prod startup gate. Raises RuntimeError on a misconfigured deployment."""
    if app_settings.MODE.lower() != "prod":
        return

    if app_settings.STORE_BACKEND.lower() != "redis":
        raise RuntimeError("In PROD, STORE_BACKEND must be 'redis'")
    if not app_settings.REDIS_URL:
        raise RuntimeError("In PROD, REDIS_URL must be present")

    logger.info("Verifying Redis connectivity for PROD startup...")
    await get_state_store().ping()
    logger.info("Redis connectivity verified.")

    if app_settings.TRACING_ENABLED and not app_settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        raise RuntimeError("In PROD, OTEL_EXPORTER_OTLP_ENDPOINT must be present when tracing is enabled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    try:
        await verify_startup(settings)
    except Exception as e:
        logger.critical(f"CRITICAL STARTUP ERROR: {e}")
        sys.exit(1)

    seed = startup_seed(settings)
    if seed is not None:
        await seed_store(get_state_store(), seed)

    yield
    # Shutdown
    logger.info("Initiating graceful shutdown...")
    ShutdownGateMiddleware.set_shutting_down(True)

    if settings.STORE_BACKEND.lower() == "redis":
        from tenant_gateway.adapters.redis.client import close_redis
        await close_redis()

    logger.info("Shutdown complete.")


app = FastAPI(
    title="Tenant LLM Gateway",
    description="Multi-tenant LLM completions and realtime sessions",
    version="0.1.0",
    lifespan=lifespan
)

from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter


# OpenTelemetry Setup
def setup_opentelemetry(app: FastAPI) -> None:
    if not settings.TRACING_ENABLED:
        return

    provider = TracerProvider(resource=Resource.create({"service.name": settings.SERVICE_NAME}))

    if settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
    else:
        processor = BatchSpanProcessor(ConsoleSpanExporter())

    from tenant_gateway.observability.tracing import RedactingSpanProcessor
    provider.add_span_processor(RedactingSpanProcessor(processor))
    trace.set_tracer_provider(provider)

    # Health checks are excluded from tracing to reduce noise
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=provider,
        excluded_urls="health/*"
    )


app.add_middleware(ShutdownGateMiddleware)
app.add_middleware(RequestIdMiddleware)

setup_opentelemetry(app)


def _request_context(request: Request) -> dict:
    return {
        "request_id": getattr(request.state, "request_id", None),
        "tenant_id": request.path_params.get("tenant_id") or request.headers.get("x-tenant-id"),
        "path": request.url.path,
    }


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields.append({"field": ".".join(loc) or "body", "issue": err.get("msg", "invalid")})
    error = MalformedRequest(fields)
    return JSONResponse(status_code=error.status_code, content=error.to_body())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    # Routers that already built an envelope (or a health report) keep their shape
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", str(exc.detail)),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", extra=_request_context(request))
    return JSONResponse(status_code=500, content=error_body("INTERNAL", "Internal gateway error"))


# Mount routers
app.include_router(health.router, tags=["Health"])
app.include_router(ai_router.router, tags=["LLM"])
app.include_router(auth_router.router, tags=["Auth"])
app.include_router(realtime_router.router, tags=["Realtime"])
