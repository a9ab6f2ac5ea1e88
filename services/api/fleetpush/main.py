"""FleetPush FastAPI application factory."""

import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_fastapi_instrumentator import Instrumentator

from fleetpush.config import Settings, get_settings
from fleetpush.dependencies import get_document_store, init_store, shutdown_store
from fleetpush.exceptions import FleetPushError
from fleetpush.middleware.error_handler import ErrorHandlerMiddleware, fleetpush_error_handler
from fleetpush.middleware.logging import LoggingMiddleware, setup_logging
from fleetpush.middleware.rate_limit import RateLimitMiddleware
from fleetpush.routers import events, legacy, notifications, tokens

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    setup_logging(debug=settings.debug)
    logger.info("Starting FleetPush API (env=%s)", settings.app_env)

    init_store(settings)

    yield

    await shutdown_store()
    logger.info("FleetPush API shutting down")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="FleetPush",
        description="Push token registry and notification fan-out for Traccar fleet tracking",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware (order matters: outermost first)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RateLimitMiddleware, settings=settings)
    origins = settings.cors_origins
    allow_all = origins == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins if not allow_all else [],
        allow_origin_regex=r".*" if allow_all else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=600,
    )

    app.add_exception_handler(FleetPushError, fleetpush_error_handler)

    # Routers
    prefix = settings.api_prefix
    app.include_router(tokens.router, prefix=prefix)
    app.include_router(notifications.router, prefix=prefix)
    app.include_router(events.router, prefix=prefix)
    app.include_router(legacy.router, prefix=prefix)

    @app.get("/")
    async def root():
        return {"status": "running", "service": "fleetpush-api", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "fleetpush-api"}

    @app.get("/health/ready")
    async def health_ready():
        """Deep health check: verifies token store and Redis connectivity."""
        checks: dict = {}

        try:
            store = get_document_store(settings)
            await store.ping()
            checks["token_store"] = "ok"
        except Exception as e:
            checks["token_store"] = f"error: {type(e).__name__}"

        try:
            r = aioredis.from_url(settings.redis_url, decode_responses=True)
            await r.ping()
            await r.aclose()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {type(e).__name__}"

        all_ok = all(v == "ok" for v in checks.values())
        return JSONResponse(
            status_code=200 if all_ok else 503,
            content={"status": "ready" if all_ok else "degraded", "checks": checks},
        )

    # Prometheus instrumentation
    instrumentator = Instrumentator(
        excluded_handlers=["/health", "/health/ready", "/docs", "/redoc", "/openapi.json", "/metrics"],
    )
    instrumentator.instrument(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint with multiprocess support."""
        from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest, multiprocess

        multiproc_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
        if multiproc_dir:
            registry = CollectorRegistry()
            multiprocess.MultiProcessCollector(registry)
            data = generate_latest(registry)
        else:
            data = generate_latest()

        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    return app


# Default app instance for uvicorn
app = create_app()
