"""
Analytics API Endpoints

Dashboard analytics bundle for the calling tenant, cached per tenant in
Redis when it is available.
"""

from fastapi import APIRouter, Depends, Query
import structlog

from storelens.analytics import Analytics
from storelens.config import Settings, get_settings
from storelens.serving.api.dependencies import get_dashboard
from storelens.serving.cache import analytics_cache
from storelens.services import DashboardService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("", response_model=Analytics)
async def get_analytics(
    refresh: bool = Query(False, description="Bypass the cached bundle"),
    service: DashboardService = Depends(get_dashboard),
    settings: Settings = Depends(get_settings),
) -> Analytics:
    """
    Revenue, order and customer totals, growth against the prior period,
    top customers and products, the daily sales trend and the order status
    distribution.
    """
    if not refresh:
        cached = await analytics_cache.get(service.tenant_id)
        if cached is not None:
            logger.debug("Analytics cache hit", tenant_id=str(service.tenant_id))
            return Analytics.model_validate(cached)

    analytics = await service.get_analytics()
    await analytics_cache.set(
        service.tenant_id,
        analytics.model_dump(mode="json"),
        ttl=settings.analytics.cache_ttl_seconds,
    )
    return analytics
