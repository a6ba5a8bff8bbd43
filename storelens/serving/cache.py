"""
Redis Cache Module

Response cache for tenant analytics. Redis is optional: until ``init_redis``
succeeds every cache call is a miss and every write is skipped, so the API
works unchanged without it. Redis errors are logged and treated the same way.
"""

import json
from typing import Any, Optional, Union
from datetime import timedelta
from uuid import UUID

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from storelens.config.settings import RedisSettings

logger = structlog.get_logger(__name__)

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis(config: RedisSettings) -> Optional[Redis]:
    """
    Initialize the Redis connection pool.

    Returns None, leaving the cache bypassed, when Redis is disabled or
    unreachable.
    """
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client
    if not config.enabled:
        logger.info("Redis cache disabled")
        return None

    pool = ConnectionPool.from_url(
        config.get_url(),
        max_connections=config.max_connections,
        socket_timeout=config.socket_timeout,
        decode_responses=True,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis unavailable, analytics cache bypassed", error=str(e))
        await client.aclose()
        await pool.disconnect()
        return None

    _redis_pool, _redis_client = pool, client
    logger.info("Redis connection established")
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection closed")


def get_redis() -> Optional[Redis]:
    """Redis client, or None when the cache is bypassed"""
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    client = get_redis()
    if client is None:
        return None
    try:
        value = await client.get(key)
    except RedisError as e:
        logger.warning("Cache read failed", key=key, error=str(e))
        return None

    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


async def cache_set(key: str, value: Any, ttl: Optional[Union[int, timedelta]] = None) -> bool:
    client = get_redis()
    if client is None:
        return False

    try:
        serialized = json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to serialize value for cache", key=key, error=str(e))
        return False

    if isinstance(ttl, timedelta):
        ttl = int(ttl.total_seconds())
    try:
        if ttl:
            await client.setex(key, ttl, serialized)
        else:
            await client.set(key, serialized)
    except RedisError as e:
        logger.warning("Cache write failed", key=key, error=str(e))
        return False
    return True


async def cache_delete(key: str) -> bool:
    client = get_redis()
    if client is None:
        return False
    try:
        return (await client.delete(key)) > 0
    except RedisError as e:
        logger.warning("Cache delete failed", key=key, error=str(e))
        return False


class CacheManager:
    """
    Namespaced cache keyed per tenant.

    Example:
        cache = CacheManager("analytics", default_ttl=300)
        await cache.set(tenant_id, payload)
        payload = await cache.get(tenant_id)
    """

    def __init__(self, namespace: str, default_ttl: int = 300):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, tenant_id: Union[UUID, str], key: str = "") -> str:
        return f"{self.namespace}:{tenant_id}:{key}" if key else f"{self.namespace}:{tenant_id}"

    async def get(self, tenant_id: Union[UUID, str], key: str = "") -> Optional[Any]:
        return await cache_get(self._key(tenant_id, key))

    async def set(self, tenant_id: Union[UUID, str], value: Any, key: str = "", ttl: Optional[int] = None) -> bool:
        return await cache_set(self._key(tenant_id, key), value, ttl if ttl is not None else self.default_ttl)

    async def invalidate(self, tenant_id: Union[UUID, str], key: str = "") -> bool:
        return await cache_delete(self._key(tenant_id, key))


analytics_cache = CacheManager("analytics")


async def invalidate_tenant(tenant_id: Union[UUID, str]) -> None:
    """Drop every cached view derived from the tenant's records"""
    await analytics_cache.invalidate(tenant_id)
