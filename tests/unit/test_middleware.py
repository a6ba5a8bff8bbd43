"""
Unit Tests for API Middleware
"""
from uuid import uuid4

import httpx
from fastapi import FastAPI

from storelens.serving.api.middleware import RateLimitMiddleware


def limited_app(max_requests: int, window_seconds: int = 60) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=window_seconds)

    @app.get("/api/v1/products")
    async def products():
        return {"items": []}

    @app.post("/api/v1/webhooks/shopify")
    async def webhook():
        return {"ok": True}

    return app


def client_for(app: FastAPI, host: str = "10.0.0.1") -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app, client=(host, 5000))
    return httpx.AsyncClient(transport=transport, base_url="http://test")


class TestRateLimit:
    """Sliding-window limiter"""

    async def test_rotating_tenant_header_does_not_escape_the_limit(self):
        async with client_for(limited_app(max_requests=2)) as client:
            statuses = [
                (await client.get("/api/v1/products", headers={"X-Tenant-ID": str(uuid4())})).status_code
                for _ in range(20)
            ]

        assert statuses[:2] == [200, 200]
        assert statuses.count(429) == 18

    async def test_limited_response_body_and_headers(self):
        async with client_for(limited_app(max_requests=1)) as client:
            assert (await client.get("/api/v1/products")).headers["X-RateLimit-Remaining"] == "0"
            response = await client.get("/api/v1/products")

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limited"
        assert response.headers["Retry-After"] == "60"

    async def test_clients_are_limited_separately(self):
        app = limited_app(max_requests=1)
        async with client_for(app, "10.0.0.1") as first, client_for(app, "10.0.0.2") as second:
            assert (await first.get("/api/v1/products")).status_code == 200
            assert (await second.get("/api/v1/products")).status_code == 200
            assert (await first.get("/api/v1/products")).status_code == 429

    async def test_webhooks_are_exempt(self):
        async with client_for(limited_app(max_requests=1)) as client:
            statuses = {(await client.post("/api/v1/webhooks/shopify")).status_code for _ in range(5)}
        assert statuses == {200}

    async def test_idle_clients_are_evicted(self):
        app = limited_app(max_requests=5, window_seconds=0)

        async with client_for(app, "10.0.0.1") as first, client_for(app, "10.0.0.2") as second:
            await first.get("/api/v1/products")
            await second.get("/api/v1/products")
            limiter = app.middleware_stack
            while not isinstance(limiter, RateLimitMiddleware):
                limiter = limiter.app

        assert limiter.tracked_clients == 1
