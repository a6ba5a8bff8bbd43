"""
Demo Data Seeding

Registers a demo tenant (if needed) and fills it with generated Shopify data,
passed through the mapper and the tenant repository like a real sync.

Usage:
    python -m storelens.data.seed --domain demo.myshopify.com --orders 300
"""

import argparse
import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.config.logging import configure_logging
from storelens.data.generators import ShopifyDataGenerator
from storelens.database.connection import close_database, get_db, init_database
from storelens.events import EventTracker
from storelens.exceptions import TenantNotFound
from storelens.ingestion.mapper import map_many
from storelens.repository import EntityKind, TenantRepository
from storelens.tenancy import TenantRegistration, TenantResolver, TenantService

logger = structlog.get_logger(__name__)


@dataclass
class SeedSummary:
    tenant_id: UUID
    products: int
    customers: int
    orders: int
    events: int


async def ensure_tenant(session: AsyncSession, domain: str, name: str) -> UUID:
    try:
        return await TenantResolver(session).resolve_tenant(domain)
    except TenantNotFound:
        tenant = await TenantService(session).register(
            TenantRegistration(
                name=name,
                domain=domain,
                owner_name="Demo Owner",
                owner_email="owner@example.com",
            )
        )
        return tenant.id


async def seed_tenant(
    session: AsyncSession,
    tenant_id: UUID,
    products: int = 20,
    customers: int = 50,
    orders: int = 200,
    seed: Optional[int] = 42,
) -> SeedSummary:
    """Generate and store one tenant's demo catalog, customers, orders and events"""
    gen = ShopifyDataGenerator(seed=seed)
    raw_products = gen.products(products)
    raw_customers = gen.customers(customers)
    raw_orders = gen.orders(orders, raw_products, raw_customers)

    repo = TenantRepository(session, tenant_id)
    for kind, raw in (
        (EntityKind.PRODUCTS, raw_products),
        (EntityKind.CUSTOMERS, raw_customers),
    ):
        for record in map_many(kind, raw).records:
            await repo.upsert_by_external_id(kind, record)

    units: Counter = Counter()
    for record in map_many(EntityKind.ORDERS, raw_orders).records:
        upserted = await repo.upsert_by_external_id(EntityKind.ORDERS, record)
        if not upserted.created:
            continue
        if record.customer_external_id:
            await repo.record_customer_purchase(record.customer_external_id, upserted.record.total)
        for item in record.line_items:
            units[item.external_product_id] += item.quantity

    for external_id, sold in units.items():
        product = await repo.find_by_external_id(EntityKind.PRODUCTS, external_id)
        if product is not None:
            await repo.update(EntityKind.PRODUCTS, product.id, {"sales": (product.sales or 0) + sold})

    tracker = EventTracker(repo)
    events = 0
    for raw in raw_products[: max(1, products // 2)]:
        session_id = f"demo-{gen.fake.uuid4()}"
        events += await tracker.product_viewed(session_id, str(raw["id"]), product_name=raw["title"])
        if gen.random.random() < 0.3:
            events += await tracker.cart_abandoned(
                session_id,
                cart_items=[{"product_id": str(raw["id"]), "quantity": 1, "price": raw["variants"][0]["price"]}],
                cart_value=raw["variants"][0]["price"],
            )

    summary = SeedSummary(
        tenant_id=tenant_id,
        products=len(raw_products),
        customers=len(raw_customers),
        orders=len(raw_orders),
        events=events,
    )
    logger.info(
        "Demo data seeded",
        tenant_id=str(tenant_id),
        products=summary.products,
        customers=summary.customers,
        orders=summary.orders,
        events=summary.events,
    )
    return summary


async def main(args: argparse.Namespace) -> None:
    configure_logging()
    await init_database(create_tables=args.create_tables)
    try:
        async with get_db() as session:
            tenant_id = await ensure_tenant(session, args.domain, args.name)
            await seed_tenant(
                session,
                tenant_id,
                products=args.products,
                customers=args.customers,
                orders=args.orders,
                seed=args.seed,
            )
    finally:
        await close_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed StoreLens with demo data")
    parser.add_argument("--domain", default="demo.myshopify.com", help="Shop domain of the demo tenant")
    parser.add_argument("--name", default="Demo Store", help="Tenant name when registering")
    parser.add_argument("--products", type=int, default=20)
    parser.add_argument("--customers", type=int, default=50)
    parser.add_argument("--orders", type=int, default=200)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    asyncio.run(main(parser.parse_args()))
