"""
Serving Module
"""
from .cache import analytics_cache, close_redis, get_redis, init_redis, invalidate_tenant

__all__ = [
    "analytics_cache",
    "close_redis",
    "get_redis",
    "init_redis",
    "invalidate_tenant",
]
