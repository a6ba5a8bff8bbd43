"""
API Integration Tests

Drive the FastAPI application over ASGI against an in-memory database.
"""
import json

import httpx
import pytest
from pydantic import SecretStr

from storelens.config import get_settings
from storelens.database.connection import close_database, init_database
from storelens.main import create_app
from storelens.serving.api.routes.webhooks import calculate_signature


@pytest.fixture
async def app(monkeypatch):
    monkeypatch.setenv("POSTGRES_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("REDIS_ENABLED", "false")
    monkeypatch.setenv("SYNC_ENABLED", "false")
    monkeypatch.setenv("APP_ENV", "testing")
    monkeypatch.setenv("ADMIN_API_TOKEN", "ops-token")
    get_settings.cache_clear()

    await init_database(create_tables=True)
    application = create_app(get_settings())

    yield application

    await close_database()
    get_settings.cache_clear()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def register(client, name="Acme", domain="acme.myshopify.com") -> dict:
    response = await client.post("/api/v1/tenants", json={
        "name": name,
        "domain": domain,
        "owner_name": f"{name} Owner",
        "owner_email": f"owner@{domain.split('.')[0]}.com",
    })
    assert response.status_code == 201, response.text
    return response.json()


def tenant_headers(tenant: dict, **extra) -> dict:
    return {"X-Tenant-ID": tenant["id"], **extra}


class TestTenantHeaders:
    """Tenant resolution from X-Tenant-ID"""

    async def test_missing_header_is_unauthorized(self, client):
        response = await client.get("/api/v1/products")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    async def test_unknown_tenant_is_unauthorized(self, client):
        response = await client.get("/api/v1/products", headers={"X-Tenant-ID": "00000000-0000-0000-0000-000000000000"})
        assert response.status_code == 401

    async def test_deactivated_tenant_is_unauthorized(self, client):
        tenant = await register(client)
        response = await client.post("/api/v1/tenants/current/deactivate", headers=tenant_headers(tenant))
        assert response.status_code == 200
        assert response.json()["status"] == "inactive"

        response = await client.get("/api/v1/tenants/current", headers=tenant_headers(tenant))
        assert response.status_code == 401


class TestTenants:

    async def test_register_and_read(self, client):
        tenant = await register(client)
        assert tenant["domain"] == "acme.myshopify.com"
        assert "shopify_access_token" not in tenant

        response = await client.get("/api/v1/tenants/current", headers=tenant_headers(tenant))
        assert response.json()["id"] == tenant["id"]

    async def test_duplicate_domain(self, client):
        await register(client)
        response = await client.post("/api/v1/tenants", json={
            "name": "Again", "domain": "acme.myshopify.com", "owner_name": "X", "owner_email": "x@acme.com",
        })
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_record"

    async def test_update_settings(self, client):
        tenant = await register(client)
        response = await client.patch(
            "/api/v1/tenants/current/settings", json={"theme": "dark"}, headers=tenant_headers(tenant)
        )
        assert response.status_code == 200
        assert response.json()["settings"]["theme"] == "dark"


class TestProducts:
    """Product CRUD through the API"""

    async def test_crud(self, client):
        headers = tenant_headers(await register(client))

        response = await client.post("/api/v1/products", json={"name": "Mug", "price": "9.50", "stock": 3}, headers=headers)
        assert response.status_code == 201
        product = response.json()
        assert product["price"] == 9.5

        listing = (await client.get("/api/v1/products?search=mu", headers=headers)).json()
        assert listing["total"] == 1
        assert listing["items"][0]["id"] == product["id"]

        response = await client.patch(f"/api/v1/products/{product['id']}", json={"stock": 10}, headers=headers)
        assert response.json()["stock"] == 10

        response = await client.delete(f"/api/v1/products/{product['id']}", headers=headers)
        assert response.status_code == 204

        response = await client.get(f"/api/v1/products/{product['id']}", headers=headers)
        assert response.status_code == 404
        assert response.json()["error"] == "record_not_found"

    async def test_invalid_product(self, client):
        headers = tenant_headers(await register(client))
        response = await client.patch(
            "/api/v1/products/00000000-0000-0000-0000-000000000001", json={"price": "-1"}, headers=headers
        )
        assert response.status_code == 422

    async def test_shopify_identity_is_not_client_settable(self, client):
        headers = tenant_headers(await register(client))

        response = await client.post("/api/v1/products", json={
            "name": "Mug", "external_id": "632910392", "created_at": "2001-01-01T00:00:00",
        }, headers=headers)

        assert response.status_code == 201
        assert response.json()["external_id"] is None
        assert not response.json()["created_at"].startswith("2001")

    async def test_other_tenant_sees_not_found(self, client):
        acme = tenant_headers(await register(client))
        globex = tenant_headers(await register(client, "Globex", "globex.myshopify.com"))

        product = (await client.post("/api/v1/products", json={"name": "Anvil"}, headers=acme)).json()

        assert (await client.get(f"/api/v1/products/{product['id']}", headers=globex)).status_code == 404
        assert (await client.get("/api/v1/products", headers=globex)).json()["total"] == 0


class TestWebhooksAndOrders:
    """Shopify webhooks feeding orders, analytics and events"""

    async def test_order_webhook_then_status_changes(self, client, shopify_order):
        tenant = await register(client)
        headers = tenant_headers(tenant)

        response = await client.post("/api/v1/webhooks/shopify", json=shopify_order, headers={
            "X-Shopify-Topic": "orders/create",
            "X-Shopify-Shop-Domain": "acme.myshopify.com",
        })
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["action"] == "created"
        assert body["event_emitted"] is True
        order_id = body["record_id"]

        order = (await client.get(f"/api/v1/orders/{order_id}", headers=headers)).json()
        assert order["total"] == 25.0
        assert order["status"] == "processing"

        response = await client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "shipped"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "shipped"

        response = await client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "cancelled"}, headers=headers)
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_status_transition"

        orders = (await client.get("/api/v1/orders?status=shipped", headers=headers)).json()
        assert orders["total"] == 1

        events = (await client.get("/api/v1/events?event_type=checkout_started", headers=headers)).json()
        assert len(events) == 1

        analytics = (await client.get("/api/v1/analytics", headers=headers)).json()
        assert analytics["total_orders"] == 1
        assert analytics["total_revenue"] == 25.0
        assert len(analytics["order_status_distribution"]) == 5

    async def test_envelope_form_and_ignored_topic(self, client):
        await register(client)
        response = await client.post("/api/v1/webhooks/shopify", json={
            "topic": "inventory_levels/update",
            "shop_domain": "acme.myshopify.com",
            "data": {"inventory_item_id": 1},
        })
        assert response.status_code == 200
        assert response.json()["action"] == "ignored"

    async def test_unknown_shop(self, client):
        response = await client.post("/api/v1/webhooks/shopify", json={
            "topic": "orders/create", "shop_domain": "nobody.myshopify.com", "data": {"id": 1},
        })
        assert response.status_code == 404

    async def test_malformed_payload(self, client):
        await register(client)
        response = await client.post("/api/v1/webhooks/shopify", json={
            "topic": "products/create", "shop_domain": "acme.myshopify.com", "data": {"title": "no id"},
        })
        assert response.status_code == 422
        assert response.json()["error"] == "malformed_record"

    async def test_missing_envelope_fields(self, client):
        response = await client.post("/api/v1/webhooks/shopify", json={"data": {}})
        assert response.status_code == 422

    async def test_signature_is_verified_when_secret_set(self, app, client, shopify_product):
        await register(client)
        settings = get_settings().model_copy(deep=True)
        settings.shopify.webhook_secret = SecretStr("s3cret")
        app.dependency_overrides[get_settings] = lambda: settings
        body = json.dumps(shopify_product).encode()
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Topic": "products/create",
            "X-Shopify-Shop-Domain": "acme.myshopify.com",
        }

        response = await client.post("/api/v1/webhooks/shopify", content=body, headers=headers)
        assert response.status_code == 401

        headers["X-Shopify-Hmac-Sha256"] = calculate_signature(body, "s3cret")
        response = await client.post("/api/v1/webhooks/shopify", content=body, headers=headers)
        assert response.status_code == 200
        app.dependency_overrides.clear()


class TestEvents:

    async def test_track_event(self, client):
        headers = tenant_headers(await register(client), **{"X-Session-ID": "sess-1", "X-User-ID": "user-1"})

        response = await client.post("/api/v1/events", json={
            "event_type": "product_viewed", "data": {"product_id": "p-1"},
        }, headers=headers)
        assert response.status_code == 201
        assert response.json() == {"tracked": True}

        events = (await client.get("/api/v1/events", headers=headers)).json()
        assert events[0]["session_id"] == "sess-1"
        assert events[0]["user_id"] == "user-1"

    async def test_invalid_events(self, client):
        tenant = await register(client)

        response = await client.post("/api/v1/events", json={
            "event_type": "product_viewed", "data": {},
        }, headers=tenant_headers(tenant, **{"X-Session-ID": "sess-1"}))
        assert response.status_code == 422

        response = await client.post("/api/v1/events", json={
            "event_type": "user_registered", "data": {},
        }, headers=tenant_headers(tenant))
        assert response.status_code == 422


class TestOperations:

    async def test_health(self, client):
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["redis"] == {"status": "bypassed"}
        assert body["checks"]["scheduler"] == {"running": False}

    async def test_readiness_and_metrics(self, client):
        assert (await client.get("/api/v1/health/ready")).json() == {"status": "ready"}
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "storelens_events_tracked_total" in response.text

    async def test_sync_routes_require_admin_token(self, client):
        assert (await client.post("/api/v1/sync/stop")).status_code == 401
        response = await client.post("/api/v1/sync/run", headers={"X-Admin-Token": "wrong"})
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

        tenant = await register(client)
        assert (await client.get("/api/v1/sync/status", headers=tenant_headers(tenant))).status_code == 401

    async def test_sync_status_and_manual_run(self, client):
        admin = {"X-Admin-Token": "ops-token"}
        status = (await client.get("/api/v1/sync/status", headers=admin)).json()
        assert status["running"] is False
        assert status["last_sweep"] is None

        await register(client)
        response = await client.post("/api/v1/sync/run", headers=admin)
        assert response.status_code == 200
        sweep = response.json()["sweep"]
        assert sweep["tenants"] == 1
        assert sweep["results"][0]["skipped"] is True

    async def test_security_headers(self, client):
        response = await client.get("/api/v1/health/live")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
