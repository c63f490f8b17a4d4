"""Storefront Backend - FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from app.config import Settings, get_settings
from api.router import api_router
from core.logging_config import setup_logging
from core.middleware import (
    RequestTrackingMiddleware,
    SecurityHeadersMiddleware,
    setup_exception_handlers,
)
from core.rate_limit import CONFIG_REFRESH_BUCKET, RateLimiter
from core.replay_guard import ReplayGuard
from core.storage import KeyValueStorage, create_storages
from services.config_refresh_service import ConfigRefreshService
from services.tenant_service import TenantService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings: Settings = app.state.settings
    setup_logging(settings)

    # Refuse to start in production with unsafe defaults
    try:
        settings.validate_secrets()
    except RuntimeError as e:
        logger.critical("Startup aborted", error=str(e))
        raise

    if not app.state.webhook_secrets:
        logger.error(
            "WEBHOOK_SECRET is not configured; config-refresh webhooks will be rejected"
        )

    try:
        await app.state.kv_storage.ping()
        logger.info("Key-value storage reachable", driver=settings.STORAGE_DRIVER)
    except Exception as e:
        logger.warning("Key-value storage not reachable at startup", error=str(e))

    logger.info(
        "Application started",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )
    yield
    # Redis mounts share one client, closing kv closes both
    await app.state.kv_storage.close()
    logger.info("Application shutting down")


def create_app(
    settings: Optional[Settings] = None,
    kv_storage: Optional[KeyValueStorage] = None,
    cache_storage: Optional[KeyValueStorage] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Storages default to the configured driver; tests pass in-memory ones.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Multi-tenant storefront backend: tenant config lookup "
                    "and HMAC-authenticated config-refresh webhooks.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    if kv_storage is None or cache_storage is None:
        default_kv, default_cache = create_storages(settings)
        kv_storage = kv_storage or default_kv
        cache_storage = cache_storage or default_cache

    tenant_service = TenantService(
        kv_storage,
        cache_storage,
        negative_cache_ttl=settings.TENANT_NEGATIVE_CACHE_TTL_SECONDS,
        negative_cache_max_size=settings.TENANT_NEGATIVE_CACHE_MAX_SIZE,
        config_cache_ttl=settings.CONFIG_CACHE_TTL_SECONDS,
    )
    rate_limiter = RateLimiter(
        kv_storage,
        limit=settings.WEBHOOK_RATE_LIMIT,
        window_ms=settings.WEBHOOK_RATE_WINDOW_MS,
        prefix=CONFIG_REFRESH_BUCKET,
    )

    app.state.settings = settings
    app.state.kv_storage = kv_storage
    app.state.cache_storage = cache_storage
    app.state.webhook_secrets = settings.webhook_secrets
    app.state.tenant_service = tenant_service
    app.state.config_refresh_service = ConfigRefreshService(
        kv_storage,
        cache_storage,
        rate_limiter=rate_limiter,
        replay_guard=ReplayGuard(kv_storage),
        tenant_service=tenant_service,
        max_body_size=settings.WEBHOOK_MAX_BODY_SIZE,
        max_age_seconds=settings.WEBHOOK_MAX_AGE_SECONDS,
    )

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # Security headers middleware
    app.add_middleware(SecurityHeadersMiddleware)

    # Global exception handlers
    setup_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()
