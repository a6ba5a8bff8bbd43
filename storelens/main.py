"""
FastAPI Application

Main entry point for the StoreLens API: tenant dashboard routes, Shopify
webhooks, and the periodic sync scheduler's lifecycle.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import structlog

from storelens.config import Settings, get_settings
from storelens.config.logging import configure_logging
from storelens.database.connection import close_database, init_database
from storelens.ingestion.scheduler import SyncScheduler, active_targets_provider
from storelens.ingestion.sync import TenantSyncService
from storelens.serving.api.errors import configure_exception_handlers
from storelens.serving.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from storelens.serving.api.routes import (
    analytics_router,
    customers_router,
    events_router,
    health_router,
    metrics_router,
    orders_router,
    products_router,
    sync_router,
    tenants_router,
    webhooks_router,
)
from storelens.serving.cache import close_redis, init_redis, invalidate_tenant

logger = structlog.get_logger(__name__)


def build_scheduler(settings: Settings) -> SyncScheduler:
    """Scheduler sweeping active tenants through the Shopify sync pipeline"""
    return SyncScheduler(
        syncer=TenantSyncService(after_sync=invalidate_tenant),
        targets_provider=active_targets_provider(),
        interval=settings.sync.interval_minutes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    configure_logging(settings.monitoring.log_level, settings=settings)

    logger.info("Starting StoreLens API", environment=settings.app_env, version=settings.version)

    # SQLite deployments have no migration step
    await init_database(create_tables=settings.database.async_url.startswith("sqlite"))
    await init_redis(settings.redis)

    scheduler: SyncScheduler = app.state.scheduler
    if settings.sync.enabled:
        scheduler.start()

    yield

    logger.info("Shutting down...")
    scheduler.stop()
    await close_redis()
    await close_database()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="StoreLens API",
        description="Multi-tenant Shopify analytics dashboard backend",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.scheduler = build_scheduler(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
    )
    # Added last so it runs first and binds request context for the others
    app.add_middleware(RequestLoggingMiddleware)

    configure_exception_handlers(app)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(metrics_router, tags=["Metrics"])
    app.include_router(tenants_router, prefix="/api/v1/tenants", tags=["Tenants"])
    app.include_router(products_router, prefix="/api/v1/products", tags=["Products"])
    app.include_router(customers_router, prefix="/api/v1/customers", tags=["Customers"])
    app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.include_router(events_router, prefix="/api/v1/events", tags=["Events"])
    app.include_router(webhooks_router, prefix="/api/v1/webhooks", tags=["Webhooks"])
    app.include_router(sync_router, prefix="/api/v1/sync", tags=["Sync"])

    @app.get("/api/v1/info", tags=["Health"])
    async def api_info():
        """API information endpoint."""
        return {
            "name": "StoreLens API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
