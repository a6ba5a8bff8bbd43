"""
API Routes Module
"""
from .health import router as health_router, metrics_router
from .tenants import router as tenants_router
from .products import router as products_router
from .customers import router as customers_router
from .orders import router as orders_router
from .analytics import router as analytics_router
from .events import router as events_router
from .webhooks import router as webhooks_router
from .sync import router as sync_router

__all__ = [
    "health_router",
    "metrics_router",
    "tenants_router",
    "products_router",
    "customers_router",
    "orders_router",
    "analytics_router",
    "events_router",
    "webhooks_router",
    "sync_router",
]
