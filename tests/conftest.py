"""
Test Suite Configuration
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Any, Dict

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storelens.config import Settings
from storelens.config.settings import DatabaseSettings, RedisSettings, ShopifySettings, SyncSettings
from storelens.database.connection import create_engine_for
from storelens.database.models import Base
from storelens.repository import TenantRepository
from storelens.tenancy import TenantRegistration, TenantService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with external services switched off"""
    return Settings(
        APP_ENV="testing",
        database=DatabaseSettings(url=TEST_DATABASE_URL),
        redis=RedisSettings(enabled=False),
        sync=SyncSettings(enabled=False),
        shopify=ShopifySettings(max_retries=2),
    )


@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test"""
    engine = create_engine_for(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_scope(session_factory):
    """``get_db`` replacement bound to the test engine"""

    @asynccontextmanager
    async def _scope():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _scope


async def _register(session: AsyncSession, name: str, domain: str, token=None):
    tenant = await TenantService(session).register(
        TenantRegistration(
            name=name,
            domain=domain,
            owner_name=f"{name} Owner",
            owner_email=f"owner@{domain.split('.')[0]}.com",
            shopify_access_token=token,
        )
    )
    await session.commit()
    return tenant


@pytest.fixture
async def tenant(test_db):
    """Active tenant with a Shopify token"""
    return await _register(test_db, "Acme", "acme.myshopify.com", token="shpat_acme")


@pytest.fixture
async def other_tenant(test_db):
    """Second active tenant, for isolation checks"""
    return await _register(test_db, "Globex", "globex.myshopify.com", token="shpat_globex")


@pytest.fixture
def repo(test_db, tenant) -> TenantRepository:
    return TenantRepository(test_db, tenant.id)


# =============================================================================
# SHOPIFY PAYLOADS
# =============================================================================

@pytest.fixture
def shopify_product() -> Dict[str, Any]:
    return {
        "id": 632910392,
        "title": "IPod Nano - 8GB",
        "product_type": "Cult Products",
        "vendor": "Apple",
        "status": "active",
        "created_at": "2024-01-10T11:00:00-05:00",
        "variants": [
            {"id": 808950810, "price": "199.00", "inventory_quantity": 10},
            {"id": 49148385, "price": "209.00", "inventory_quantity": 20},
            {"id": 39072856, "price": "199.00", "inventory_quantity": -3},
        ],
        "images": [{"src": "https://cdn.shopify.com/s/files/ipod-nano.png"}],
        "tags": "Emotive, Flash Memory",
    }


@pytest.fixture
def shopify_customer() -> Dict[str, Any]:
    return {
        "id": 207119551,
        "email": "bob.norman@mail.com",
        "first_name": "Bob",
        "last_name": "Norman",
        "phone": "+16136120707",
        "orders_count": 1,
        "total_spent": "199.65",
        "state": "enabled",
        "created_at": "2024-01-01T08:00:00Z",
    }


@pytest.fixture
def shopify_order(shopify_product, shopify_customer) -> Dict[str, Any]:
    return {
        "id": 450789469,
        "email": "bob.norman@mail.com",
        "customer": {
            "id": shopify_customer["id"],
            "first_name": "Bob",
            "last_name": "Norman",
            "email": "bob.norman@mail.com",
        },
        "line_items": [
            {"product_id": shopify_product["id"], "title": "IPod Nano - 8GB", "quantity": 2, "price": "10.00"},
            {"product_id": 921728736, "title": "IPod Touch 8GB", "quantity": 1, "price": "5.00"},
        ],
        "total_price": "31.50",
        "financial_status": "paid",
        "fulfillment_status": None,
        "cancelled_at": None,
        "checkout_token": "checkout-abc",
        "created_at": "2024-02-01T10:00:00Z",
        "processed_at": "2024-02-01T10:05:00Z",
        "shipping_address": {
            "address1": "123 Amoebobacterieae St",
            "city": "Ottawa",
            "province": "Ontario",
            "zip": "K2P0V6",
            "country": "Canada",
        },
    }


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 1, 12, 0, 0)
