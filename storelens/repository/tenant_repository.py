"""
Tenant-Scoped Repository

A repository handle is bound to exactly one tenant at construction time.
Every query it issues is filtered by that tenant and every row it writes is
stamped with it, so no caller can read or write another tenant's records
through it.

Records of another tenant are reported as ``RecordNotFound``, exactly like
ids that do not exist at all.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy import Select, and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.analytics.snapshot import AnalyticsSnapshot
from storelens.database.models import Base, Customer, CustomEvent, Order, Product
from storelens.exceptions import AppendOnlyViolation, InvalidRecord, RecordNotFound
from storelens.repository.schemas import (
    CustomEventRecord,
    CustomerRecord,
    CustomerUpdate,
    OrderLineItem,
    OrderRecord,
    OrderUpdate,
    ProductRecord,
    ProductUpdate,
    order_total,
    to_money,
)

logger = structlog.get_logger(__name__)


class EntityKind(str, Enum):
    """Tenant-scoped collections"""
    PRODUCTS = "products"
    CUSTOMERS = "customers"
    ORDERS = "orders"
    CUSTOM_EVENTS = "custom_events"


@dataclass(frozen=True)
class _EntitySpec:
    model: Type[Base]
    create_schema: Type[BaseModel]
    update_schema: Optional[Type[BaseModel]]
    default_order: str
    search_column: Optional[str]

    @property
    def append_only(self) -> bool:
        return self.update_schema is None


ENTITIES: Dict[EntityKind, _EntitySpec] = {
    EntityKind.PRODUCTS: _EntitySpec(Product, ProductRecord, ProductUpdate, "created_at", "name"),
    EntityKind.CUSTOMERS: _EntitySpec(Customer, CustomerRecord, CustomerUpdate, "created_at", "name"),
    EntityKind.ORDERS: _EntitySpec(Order, OrderRecord, OrderUpdate, "order_date", "customer_name"),
    EntityKind.CUSTOM_EVENTS: _EntitySpec(CustomEvent, CustomEventRecord, None, "timestamp", None),
}

# Set only on insert; never overwritten by an upsert of the same external record
_IMMUTABLE_ON_UPSERT = {"id", "external_id", "created_at"}


@dataclass
class ListFilter:
    """
    Listing options.

    Attributes:
        equals: column -> value equality filters
        search: case-insensitive substring match on the kind's name column
        since/until: inclusive bounds on the kind's timestamp column
        order_by: column to sort by (defaults to the kind's timestamp column)
        descending: sort direction
        limit/offset: pagination
    """
    equals: Dict[str, Any] = field(default_factory=dict)
    search: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    order_by: Optional[str] = None
    descending: bool = True
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class UpsertResult:
    """Outcome of an upsert keyed by external id"""
    record: Any
    created: bool


RecordInput = Union[Mapping[str, Any], BaseModel]


class TenantRepository:
    """
    CRUD and upsert operations over one tenant's records.

    Example:
        repo = TenantRepository(session, tenant_id)
        product = await repo.create(EntityKind.PRODUCTS, {"name": "Mug", "price": "9.50"})
        orders = await repo.list(EntityKind.ORDERS, ListFilter(limit=20))
    """

    def __init__(self, session: AsyncSession, tenant_id: UUID):
        if tenant_id is None:
            raise ValueError("TenantRepository requires a tenant id")
        self._session = session
        self._tenant_id = tenant_id

    @property
    def tenant_id(self) -> UUID:
        return self._tenant_id

    @property
    def session(self) -> AsyncSession:
        return self._session

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _scoped(self, spec: _EntitySpec) -> Select:
        return select(spec.model).where(spec.model.tenant_id == self._tenant_id)

    def _column(self, spec: _EntitySpec, name: str):
        if name not in spec.model.__table__.columns:
            raise InvalidRecord(f"Unknown field '{name}' for {spec.model.__tablename__}")
        return getattr(spec.model, name)

    def _apply_filter(self, spec: _EntitySpec, query: Select, flt: ListFilter) -> Select:
        conditions = []
        for name, value in flt.equals.items():
            if name == "tenant_id":
                continue
            conditions.append(self._column(spec, name) == value)
        if flt.search and spec.search_column:
            conditions.append(self._column(spec, spec.search_column).icontains(flt.search, autoescape=True))
        timestamp = self._column(spec, spec.default_order)
        if flt.since is not None:
            conditions.append(timestamp >= flt.since)
        if flt.until is not None:
            conditions.append(timestamp <= flt.until)
        if conditions:
            query = query.where(and_(*conditions))
        return query

    async def list(self, kind: EntityKind, flt: Optional[ListFilter] = None) -> List[Any]:
        """List records, newest first unless the filter says otherwise."""
        spec = ENTITIES[EntityKind(kind)]
        flt = flt or ListFilter()
        query = self._apply_filter(spec, self._scoped(spec), flt)

        order_column = self._column(spec, flt.order_by or spec.default_order)
        ordering = order_column.desc() if flt.descending else order_column.asc()
        query = query.order_by(ordering, spec.model.id)

        if flt.offset:
            query = query.offset(flt.offset)
        if flt.limit is not None:
            query = query.limit(flt.limit)

        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def count(self, kind: EntityKind, flt: Optional[ListFilter] = None) -> int:
        spec = ENTITIES[EntityKind(kind)]
        query = select(func.count(spec.model.id)).where(spec.model.tenant_id == self._tenant_id)
        if flt is not None:
            query = self._apply_filter(spec, query, flt)
        return (await self._session.execute(query)).scalar() or 0

    async def get(self, kind: EntityKind, record_id: UUID) -> Any:
        """Fetch one record or raise RecordNotFound."""
        kind = EntityKind(kind)
        spec = ENTITIES[kind]
        try:
            key = record_id if isinstance(record_id, UUID) else UUID(str(record_id))
        except ValueError:
            raise RecordNotFound(kind.value, record_id)
        result = await self._session.execute(
            self._scoped(spec).where(spec.model.id == key)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise RecordNotFound(kind.value, record_id)
        return record

    async def find_by_external_id(self, kind: EntityKind, external_id: str) -> Optional[Any]:
        spec = ENTITIES[EntityKind(kind)]
        if not hasattr(spec.model, "external_id"):
            return None
        result = await self._session.execute(
            self._scoped(spec).where(spec.model.external_id == str(external_id))
        )
        return result.scalar_one_or_none()

    async def snapshot(self) -> AnalyticsSnapshot:
        """Current products, customers and orders for aggregation"""
        products = await self.list(EntityKind.PRODUCTS)
        customers = await self.list(EntityKind.CUSTOMERS)
        orders = await self.list(EntityKind.ORDERS)
        return AnalyticsSnapshot(products=products, customers=customers, orders=orders)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _validate(self, schema: Type[BaseModel], data: RecordInput) -> BaseModel:
        if isinstance(data, schema):
            return data
        payload = data.model_dump(exclude_unset=True) if isinstance(data, BaseModel) else dict(data)
        try:
            return schema.model_validate(payload)
        except ValidationError as e:
            raise InvalidRecord(
                f"Invalid {schema.__name__}: {e.error_count()} error(s)",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

    async def _values(self, kind: EntityKind, record: BaseModel) -> Dict[str, Any]:
        values = record.model_dump(exclude_unset=True)
        if values.get("id") is None:
            values.pop("id", None)
        for name in ("created_at", "join_date", "order_date", "timestamp"):
            if name in values and values[name] is None:
                values.pop(name)

        if kind == EntityKind.ORDERS:
            values = await self._order_values(record, values)
        return values

    async def _order_values(self, record: BaseModel, values: Dict[str, Any]) -> Dict[str, Any]:
        if "line_items" in values:
            items: List[OrderLineItem] = list(record.line_items or [])
            items = await self._resolve_products(items)
            values["line_items"] = [item.model_dump(mode="json") for item in items]
            values["total"] = order_total(items)
        elif "total" in values:
            values.pop("total")

        external_customer = values.get("customer_external_id")
        if external_customer and not values.get("customer_id"):
            customer = await self.find_by_external_id(EntityKind.CUSTOMERS, external_customer)
            if customer is not None:
                values["customer_id"] = customer.id
        return values

    async def _resolve_products(self, items: Sequence[OrderLineItem]) -> List[OrderLineItem]:
        """Fill internal product ids for line items that only carry an external id"""
        wanted = {i.external_product_id for i in items if i.product_id is None and i.external_product_id}
        if not wanted:
            return list(items)
        result = await self._session.execute(
            select(Product.external_id, Product.id).where(
                Product.tenant_id == self._tenant_id,
                Product.external_id.in_(wanted),
            )
        )
        by_external = {row.external_id: row.id for row in result.all()}
        return [
            item.model_copy(update={"product_id": by_external[item.external_product_id]})
            if item.product_id is None and item.external_product_id in by_external
            else item
            for item in items
        ]

    async def create(self, kind: EntityKind, data: RecordInput) -> Any:
        """
        Insert a record for this tenant.

        Any tenant id present in ``data`` is discarded; the bound tenant is
        always used.
        """
        kind = EntityKind(kind)
        spec = ENTITIES[kind]
        record = self._validate(spec.create_schema, data)
        values = await self._values(kind, record)
        values["tenant_id"] = self._tenant_id

        row = spec.model(**values)
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise InvalidRecord(f"Conflicting {kind.value} record", reason=str(e.orig)) from e
        logger.debug("Record created", kind=kind.value, tenant_id=str(self._tenant_id), record_id=str(row.id))
        return row

    async def update(self, kind: EntityKind, record_id: UUID, data: RecordInput) -> Any:
        """Apply a partial update; RecordNotFound for foreign or missing ids."""
        kind = EntityKind(kind)
        spec = ENTITIES[kind]
        if spec.append_only:
            raise AppendOnlyViolation(f"{kind.value} records cannot be modified")

        row = await self.get(kind, record_id)
        update = self._validate(spec.update_schema, data)
        values = await self._values(kind, update)
        self._assign(spec, row, values)
        await self._session.flush()
        return row

    async def delete(self, kind: EntityKind, record_id: UUID) -> None:
        """Delete a record; RecordNotFound for foreign or missing ids."""
        kind = EntityKind(kind)
        spec = ENTITIES[kind]
        if spec.append_only:
            raise AppendOnlyViolation(f"{kind.value} records cannot be deleted")

        row = await self.get(kind, record_id)
        await self._session.delete(row)
        await self._session.flush()
        logger.debug("Record deleted", kind=kind.value, tenant_id=str(self._tenant_id), record_id=str(record_id))

    @staticmethod
    def _assign(spec: _EntitySpec, row: Any, values: Mapping[str, Any]) -> None:
        columns = spec.model.__table__.columns
        for name, value in values.items():
            if name in ("id", "tenant_id") or name not in columns:
                continue
            if value is None and not columns[name].nullable:
                continue
            setattr(row, name, value)

    async def upsert_by_external_id(self, kind: EntityKind, data: RecordInput) -> UpsertResult:
        """
        Create or update keyed by the external platform id.

        Replaying the same external record converges to one stored row. Only
        fields present in the record are written on update, so locally owned
        fields (e.g. product sales and rating) survive a sync.
        """
        kind = EntityKind(kind)
        spec = ENTITIES[kind]
        if spec.append_only:
            raise AppendOnlyViolation(f"{kind.value} records cannot be upserted")

        record = self._validate(spec.create_schema, data)
        external_id = getattr(record, "external_id", None)
        if not external_id:
            raise InvalidRecord(f"{kind.value} upsert requires an external_id")

        values = await self._values(kind, record)
        existing = await self.find_by_external_id(kind, external_id)
        if existing is not None:
            return UpsertResult(await self._apply_upsert(spec, existing, values), created=False)

        values["tenant_id"] = self._tenant_id
        row = spec.model(**values)
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            # Concurrent insert of the same external record won the race
            existing = await self.find_by_external_id(kind, external_id)
            if existing is None:
                raise
            logger.info("Upsert raced with concurrent insert", kind=kind.value, external_id=external_id)
            return UpsertResult(await self._apply_upsert(spec, existing, values), created=False)
        return UpsertResult(row, created=True)

    async def _apply_upsert(self, spec: _EntitySpec, row: Any, values: Dict[str, Any]) -> Any:
        self._assign(spec, row, {k: v for k, v in values.items() if k not in _IMMUTABLE_ON_UPSERT})
        await self._session.flush()
        return row

    async def record_customer_purchase(
        self,
        customer_external_id: str,
        amount: Decimal,
    ) -> Optional[Customer]:
        """Increment a customer's order count and spend after a new order"""
        customer = await self.find_by_external_id(EntityKind.CUSTOMERS, customer_external_id)
        if customer is None:
            return None
        customer.total_orders = (customer.total_orders or 0) + 1
        customer.total_spent = to_money((customer.total_spent or Decimal("0")) + Decimal(amount))
        await self._session.flush()
        return customer
