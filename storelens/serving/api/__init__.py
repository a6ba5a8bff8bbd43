"""
API Module
"""
from .errors import configure_exception_handlers
from .middleware import RequestLoggingMiddleware, RateLimitMiddleware, SecurityHeadersMiddleware

__all__ = [
    "configure_exception_handlers",
    "RequestLoggingMiddleware",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
]
