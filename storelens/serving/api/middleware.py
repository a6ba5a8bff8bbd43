"""
API Middleware

- Request logging with request/tenant ids bound into the structlog context
- Per-client in-memory rate limiting
- Security headers
"""

import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict
import asyncio

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from storelens.serving.api.dependencies import TENANT_HEADER

logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request with timing.

    ``request_id`` and ``tenant_id`` are bound to structlog's context
    variables for the duration of the request, so every log line emitted
    while handling it carries them.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            tenant_id=request.headers.get(TENANT_HEADER),
        )

        try:
            logger.debug(
                "Request started",
                method=request.method,
                path=request.url.path,
                client=request.client.host if request.client else None,
            )
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers["X-Request-ID"] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter keyed by client address. Webhook deliveries
    are exempt; Shopify retries throttled deliveries aggressively.

    State is per process. Clients whose window has emptied are dropped.
    """

    exempt_prefixes = ("/api/v1/webhooks", "/api/v1/health", "/metrics")

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: int = 60,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = asyncio.Lock()

    def _client_key(self, request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def _evict_idle(self, now: float) -> None:
        idle = [key for key, window in self._requests.items() if not window or now - window[-1] >= self.window_seconds]
        for key in idle:
            del self._requests[key]

    @property
    def tracked_clients(self) -> int:
        return len(self._requests)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(self.exempt_prefixes):
            return await call_next(request)

        key = self._client_key(request)
        now = time.monotonic()

        async with self._lock:
            self._evict_idle(now)
            window = self._requests.setdefault(key, deque())
            while window and now - window[0] >= self.window_seconds:
                window.popleft()

            if len(window) >= self.max_requests:
                logger.warning("Rate limit exceeded", client=key, requests=len(window))
                return JSONResponse(
                    content={"error": "rate_limited", "detail": "Rate limit exceeded"},
                    status_code=429,
                    headers={
                        "Retry-After": str(self.window_seconds),
                        "X-RateLimit-Limit": str(self.max_requests),
                        "X-RateLimit-Remaining": "0",
                    },
                )

            window.append(now)
            remaining = self.max_requests - len(window)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response
