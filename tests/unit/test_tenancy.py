"""
Unit Tests for Tenant Registration and Resolution
"""
from uuid import uuid4

import pytest

from storelens.database.models import TenantStatus, UserRole
from storelens.exceptions import InvalidRecord, TenantNotFound
from storelens.tenancy import TenantResolver, TenantService, normalize_domain


class TestNormalizeDomain:

    @pytest.mark.parametrize(
        "raw",
        ["acme.myshopify.com", "ACME.myshopify.com", "https://acme.myshopify.com/", " http://acme.myshopify.com/admin "],
    )
    def test_same_shop(self, raw):
        assert normalize_domain(raw) == "acme.myshopify.com"

    def test_empty(self):
        assert normalize_domain("") == ""


class TestTenantService:
    """Registration and lifecycle"""

    async def test_register_creates_tenant_and_owner(self, test_db):
        service = TenantService(test_db)
        tenant = await service.register({
            "name": "Initech",
            "domain": "https://Initech.myshopify.com",
            "owner_name": "Bill Lumbergh",
            "owner_email": "Bill@Initech.com",
        })

        assert tenant.domain == "initech.myshopify.com"
        assert tenant.status == TenantStatus.ACTIVE
        assert tenant.settings["currency"] == "USD"
        assert tenant.settings["theme"] == "light"

        users = await service.users(tenant.id)
        assert [(u.email, u.role) for u in users] == [("bill@initech.com", UserRole.ADMIN)]

    async def test_duplicate_domain_is_rejected(self, test_db, tenant):
        with pytest.raises(InvalidRecord):
            await TenantService(test_db).register({
                "name": "Acme Again",
                "domain": "ACME.myshopify.com",
                "owner_name": "Wile",
                "owner_email": "wile@acme.com",
            })

    async def test_invalid_email_is_rejected(self, test_db):
        with pytest.raises(InvalidRecord):
            await TenantService(test_db).register({
                "name": "Initech",
                "domain": "initech.myshopify.com",
                "owner_name": "Bill",
                "owner_email": "not-an-email",
            })

    async def test_update_settings_merges(self, test_db, tenant):
        updated = await TenantService(test_db).update_settings(tenant.id, {"theme": "dark"})
        assert updated.settings["theme"] == "dark"
        assert updated.settings["currency"] == "USD"

    async def test_update_settings_validates(self, test_db, tenant):
        with pytest.raises(InvalidRecord):
            await TenantService(test_db).update_settings(tenant.id, {"theme": "neon"})

    async def test_set_access_token(self, test_db, tenant):
        updated = await TenantService(test_db).set_access_token(tenant.id, "shpat_new")
        assert updated.shopify_access_token == "shpat_new"

    async def test_deactivated_tenant_stops_resolving(self, test_db, tenant):
        await TenantService(test_db).deactivate(tenant.id)

        resolver = TenantResolver(test_db)
        with pytest.raises(TenantNotFound):
            await resolver.resolve_tenant("acme.myshopify.com")
        with pytest.raises(TenantNotFound):
            await resolver.get_tenant(tenant.id)
        assert (await resolver.get_tenant(tenant.id, active_only=False)).status == TenantStatus.INACTIVE


class TestTenantResolver:
    """Domain and id lookups"""

    async def test_resolve_by_domain(self, test_db, tenant):
        resolver = TenantResolver(test_db)
        assert await resolver.resolve_tenant("acme.myshopify.com") == tenant.id
        assert await resolver.resolve_tenant("https://ACME.myshopify.com") == tenant.id

    async def test_unknown_domain(self, test_db, tenant):
        with pytest.raises(TenantNotFound):
            await TenantResolver(test_db).resolve_tenant("unknown.myshopify.com")
        with pytest.raises(TenantNotFound):
            await TenantResolver(test_db).resolve_tenant("")

    async def test_get_tenant_bad_ids(self, test_db):
        resolver = TenantResolver(test_db)
        with pytest.raises(TenantNotFound):
            await resolver.get_tenant("not-a-uuid")
        with pytest.raises(TenantNotFound):
            await resolver.get_tenant(uuid4())

    async def test_active_sync_targets(self, test_db, tenant, other_tenant):
        await TenantService(test_db).deactivate(other_tenant.id)

        targets = await TenantResolver(test_db).active_sync_targets()

        assert [(t.tenant_id, t.domain, t.access_token) for t in targets] == [
            (tenant.id, "acme.myshopify.com", "shpat_acme")
        ]
