"""FastAPI application entrypoint.

Configures logging, Sentry, Redis and CORS, includes routers, renders
integration lifecycle errors and exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from . import schemas, state
from .deps import get_settings
from .errors import MetrionixError
from .models import utcnow
from .routers import integrations as integrations_router
from .routers import oauth as oauth_router
from .routers import sync as sync_router
from .routers import webhooks as webhooks_router
from .telemetry import init_sentry
from .workers.arq_enqueue import reset_arq_pool

# Import models so Alembic can discover metadata
from . import models  # noqa: F401


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Metrionix API",
        description="""
        Metrionix connects agency ad, analytics and commerce accounts and keeps
        their daily metrics in sync.

        This API provides endpoints for:
        - OAuth connections (Google Ads, GA4, Search Console, Meta Ads)
        - WooCommerce connections with REST API keys
        - Per-platform metric syncs
        - Signed platform webhooks

        ## Authentication

        Bearer JWTs issued by the auth provider, carrying the caller's agency_id.
        Webhooks authenticate with a per-platform HMAC shared secret instead.
        """,
        version="0.1.0",
    )

    # Trust X-Forwarded-Proto from the load balancer so redirects stay https
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    allowed_origins = settings.cors_origins
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MetrionixError)
    async def metrionix_error_handler(request: Request, exc: MetrionixError):
        if exc.http_status >= 500:
            logger.error("[API] %s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.http_status,
            content={**exc.to_dict(), "timestamp": utcnow().isoformat()},
        )

    app.include_router(oauth_router.router)
    app.include_router(integrations_router.router)
    app.include_router(sync_router.router)
    app.include_router(webhooks_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    @app.on_event("startup")
    async def startup_event():
        """Fail fast on core config, then wire Sentry and Redis."""
        settings.require_valid()
        init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)
        if state.init_redis(settings.REDIS_URL) is None:
            logger.warning("[STARTUP] Redis unavailable - check REDIS_URL (currently: %s)", settings.redis_endpoint)

    @app.on_event("shutdown")
    async def shutdown_event():
        state.close_redis()
        await reset_arq_pool()

    return app


app = create_app()
