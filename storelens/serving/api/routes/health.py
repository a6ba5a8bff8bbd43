"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems, and the
Prometheus scrape endpoint.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from redis.exceptions import RedisError

from storelens.config import Settings, get_settings
from storelens.database.connection import check_database_health
from storelens.database.models import utcnow
from storelens.serving.cache import get_redis

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """
    Database, Redis and scheduler status.

    Redis is optional: when it is not configured the cache is reported as
    bypassed and the service stays healthy.
    """
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    db_health = await check_database_health()
    checks["database"] = db_health
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"

    redis = get_redis()
    if redis is None:
        checks["redis"] = {"status": "bypassed"}
    else:
        try:
            await redis.ping()
            checks["redis"] = {"status": "healthy"}
        except (RedisError, OSError) as e:
            checks["redis"] = {"status": "unhealthy", "error": str(e)}
            if overall_status == "healthy":
                overall_status = "degraded"

    scheduler = getattr(request.app.state, "scheduler", None)
    checks["scheduler"] = {"running": bool(scheduler and scheduler.is_running)}

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=utcnow(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 while the process is serving."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """Returns 200 when the database is reachable, 503 otherwise."""
    db_health = await check_database_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}


metrics_router = APIRouter()


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus exposition of the process registry"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
