"""
Dashboard Service

The operations the presentation layer calls, scoped to one tenant. Routers
in ``storelens.serving.api.routes`` are thin wrappers around this class.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar, Union
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.analytics import Analytics, AnalyticsOptions, compute_analytics
from storelens.analytics.aggregator import TopCustomer, rank_customers
from storelens.config import Settings, get_settings
from storelens.database.models import (
    Customer,
    CustomEvent,
    EventKind,
    Order,
    OrderStatus,
    Product,
    RecordStatus,
)
from storelens.events import EventTracker, parse_event_payload
from storelens.exceptions import InvalidStatusTransition
from storelens.ingestion.mapper import to_external_patch
from storelens.ingestion.shopify_client import ShopifyClient
from storelens.repository import EntityKind, ListFilter, TenantRepository
from storelens.repository.schemas import ProductCreate, ProductUpdate
from storelens.tenancy.resolver import TenantResolver

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Position in the fulfilment sequence; cancelled sits outside it
_STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
}
_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.PROCESSING}


def check_status_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """
    Orders only move forward through pending, processing, shipped and
    delivered. Cancelling is possible until the order ships.

    Raises:
        InvalidStatusTransition: the move is not allowed
    """
    current, requested = OrderStatus(current), OrderStatus(requested)
    if current == requested:
        return
    if requested == OrderStatus.CANCELLED:
        allowed = current in _CANCELLABLE
    elif current == OrderStatus.CANCELLED:
        allowed = False
    else:
        allowed = _STATUS_RANK[requested] > _STATUS_RANK[current]
    if not allowed:
        raise InvalidStatusTransition(current.value, requested.value)


@dataclass
class Page(Generic[T]):
    """One page of a listing"""
    items: List[T]
    total: int
    limit: Optional[int]
    offset: int


class DashboardService:
    """
    Tenant-scoped dashboard operations.

    Example:
        service = DashboardService(db, tenant_id)
        analytics = await service.get_analytics()
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        settings: Optional[Settings] = None,
        shopify_client_factory: Callable[[str, Optional[str]], ShopifyClient] = ShopifyClient,
    ):
        self._session = session
        self._settings = settings or get_settings()
        self._repo = TenantRepository(session, tenant_id)
        self._tracker = EventTracker(self._repo)
        self._shopify_client_factory = shopify_client_factory

    @property
    def tenant_id(self) -> UUID:
        return self._repo.tenant_id

    async def commit(self) -> None:
        await self._session.commit()

    async def _page(self, kind: EntityKind, flt: ListFilter) -> Page:
        items = await self._repo.list(kind, flt)
        total = await self._repo.count(kind, ListFilter(equals=flt.equals, search=flt.search,
                                                        since=flt.since, until=flt.until))
        return Page(items=items, total=total, limit=flt.limit, offset=flt.offset)

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def list_products(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[Product]:
        equals: Dict[str, Any] = {}
        if category:
            equals["category"] = category
        if status:
            equals["status"] = RecordStatus(status)
        return await self._page(
            EntityKind.PRODUCTS,
            ListFilter(equals=equals, search=search, limit=limit, offset=offset),
        )

    async def get_product(self, product_id: UUID) -> Product:
        return await self._repo.get(EntityKind.PRODUCTS, product_id)

    async def create_product(self, data: Union[ProductCreate, Mapping[str, Any]]) -> Product:
        """Create a local product; external ids only ever come from Shopify"""
        if isinstance(data, ProductCreate):
            values = data.model_dump(exclude_unset=True)
        else:
            values = {k: v for k, v in data.items() if k in ProductCreate.model_fields}
        product = await self._repo.create(EntityKind.PRODUCTS, values)
        logger.info("Product created", tenant_id=str(self.tenant_id), product_id=str(product.id))
        return product

    async def update_product(self, product_id: UUID, data: Union[ProductUpdate, Mapping[str, Any]]) -> Product:
        """Apply a local edit, then push it to Shopify when enabled"""
        product = await self._repo.update(EntityKind.PRODUCTS, product_id, data)
        if self._settings.shopify.push_local_edits and product.external_id:
            # Already validated by the repository
            update = data if isinstance(data, ProductUpdate) else ProductUpdate.model_validate(dict(data))
            await self._push_product(product, update)
        return product

    async def _push_product(self, product: Product, update: ProductUpdate) -> None:
        patch = to_external_patch(EntityKind.PRODUCTS, update)
        if not patch.get("product"):
            return
        tenant = await TenantResolver(self._session).get_tenant(self.tenant_id)
        if not tenant.shopify_access_token:
            logger.info("Tenant has no Shopify token, edit kept local", tenant_id=str(self.tenant_id))
            return
        client = self._shopify_client_factory(tenant.domain, tenant.shopify_access_token)
        try:
            await client.update_product(product.external_id, patch)
        finally:
            await client.close()

    async def delete_product(self, product_id: UUID) -> None:
        await self._repo.delete(EntityKind.PRODUCTS, product_id)
        logger.info("Product deleted", tenant_id=str(self.tenant_id), product_id=str(product_id))

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    async def list_customers(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[Customer]:
        equals = {"status": RecordStatus(status)} if status else {}
        return await self._page(
            EntityKind.CUSTOMERS,
            ListFilter(equals=equals, search=search, limit=limit, offset=offset),
        )

    async def get_customer(self, customer_id: UUID) -> Customer:
        return await self._repo.get(EntityKind.CUSTOMERS, customer_id)

    async def top_customers(self, limit: Optional[int] = None) -> List[TopCustomer]:
        customers = await self._repo.list(EntityKind.CUSTOMERS)
        return rank_customers(customers, limit or self._settings.analytics.top_n)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[Order]:
        equals = {"status": OrderStatus(status)} if status else {}
        return await self._page(
            EntityKind.ORDERS,
            ListFilter(equals=equals, search=search, since=since, until=until, limit=limit, offset=offset),
        )

    async def get_order(self, order_id: UUID) -> Order:
        return await self._repo.get(EntityKind.ORDERS, order_id)

    async def update_order_status(self, order_id: UUID, status: Union[OrderStatus, str]) -> Order:
        """
        Move an order along its lifecycle.

        Raises:
            RecordNotFound: unknown order for this tenant
            InvalidStatusTransition: backwards move, or leaving a terminal status
        """
        order = await self._repo.get(EntityKind.ORDERS, order_id)
        requested = OrderStatus(status)
        check_status_transition(order.status, requested)
        if order.status == requested:
            return order
        previous = order.status
        order = await self._repo.update(EntityKind.ORDERS, order_id, {"status": requested})
        logger.info(
            "Order status changed",
            tenant_id=str(self.tenant_id),
            order_id=str(order_id),
            previous=OrderStatus(previous).value,
            status=requested.value,
        )
        return order

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    async def get_analytics(self, as_of: Optional[datetime] = None) -> Analytics:
        snapshot = await self._repo.snapshot()
        return compute_analytics(snapshot, AnalyticsOptions.from_settings(self._settings), as_of)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def track_event(
        self,
        kind: Union[EventKind, str],
        session_id: str,
        user_id: Optional[str] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Record a client event.

        Raises:
            InvalidRecord: unknown kind or payload of the wrong shape
        """
        parse_event_payload(kind, payload)
        return await self._tracker.track(kind, session_id, user_id, payload)

    async def list_events(
        self,
        kind: Optional[Union[EventKind, str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[CustomEvent]:
        return await self._tracker.list_events(kind, limit=limit, offset=offset)
