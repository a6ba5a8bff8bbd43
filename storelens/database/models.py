"""
Database Models - Tenant-Partitioned Commerce Schema

Every commerce entity carries an explicit ``tenant_id``. Records ingested from
Shopify also carry an ``external_id``; ``(tenant_id, external_id)`` is unique so
that webhook and sweep ingestion converge on one row per external record.

Tables:
- tenants: stores using the dashboard
- users: dashboard accounts, one owner per tenant at registration
- products / customers / orders: synchronized commerce records
- custom_events: append-only behavioral events

Column types are portable (``Uuid``, ``JSON``) so the schema runs on both
PostgreSQL and SQLite.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Type
import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class TenantStatus(str, Enum):
    """Tenant lifecycle status"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class RecordStatus(str, Enum):
    """Product/customer status"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class UserRole(str, Enum):
    """Dashboard user role"""
    ADMIN = "admin"
    MANAGER = "manager"
    ANALYST = "analyst"


class EventKind(str, Enum):
    """Custom behavioral event kinds"""
    CART_ABANDONED = "cart_abandoned"
    CHECKOUT_STARTED = "checkout_started"
    PRODUCT_VIEWED = "product_viewed"
    USER_REGISTERED = "user_registered"
    DATA_SYNC_COMPLETED = "data_sync_completed"


def _enum(enum_cls: Type[Enum], name: str) -> SQLEnum:
    # Persist enum values ("pending"), not member names ("PENDING")
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


# =============================================================================
# TENANCY
# =============================================================================

class Tenant(Base):
    """
    Tenant Table

    One store. Never hard-deleted; deactivation flips ``status``.
    """
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)
    status: Mapped[TenantStatus] = mapped_column(
        _enum(TenantStatus, "tenant_status"), default=TenantStatus.ACTIVE
    )
    shopify_access_token: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_tenants_status", "status"),
    )


class User(Base):
    """Dashboard user belonging to one tenant"""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, "user_role"), default=UserRole.ADMIN)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )


# =============================================================================
# COMMERCE RECORDS
# =============================================================================

class Product(Base):
    """Product catalog entry"""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    external_id: Mapped[Optional[str]] = mapped_column(String(64))

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="Uncategorized")
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    image: Mapped[Optional[str]] = mapped_column(String(1000))
    status: Mapped[RecordStatus] = mapped_column(
        _enum(RecordStatus, "product_status"), default=RecordStatus.ACTIVE
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_products_tenant_external"),
        CheckConstraint("price >= 0", name="ck_products_price"),
        CheckConstraint("stock >= 0", name="ck_products_stock"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_products_rating"),
        Index("ix_products_tenant_created", "tenant_id", "created_at"),
    )


class Customer(Base):
    """Store customer"""
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    external_id: Mapped[Optional[str]] = mapped_column(String(64))

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    total_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    join_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    status: Mapped[RecordStatus] = mapped_column(
        _enum(RecordStatus, "customer_status"), default=RecordStatus.ACTIVE
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_customers_tenant_external"),
        CheckConstraint("total_spent >= 0", name="ck_customers_total_spent"),
        Index("ix_customers_tenant_created", "tenant_id", "created_at"),
        Index("ix_customers_tenant_spent", "tenant_id", "total_spent"),
    )


class Order(Base):
    """
    Order with denormalized customer snapshot and JSON line items.

    ``total`` always equals the sum of ``quantity * price`` over
    ``line_items``; the repository derives it on every write.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    external_id: Mapped[Optional[str]] = mapped_column(String(64))

    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL")
    )
    customer_external_id: Mapped[Optional[str]] = mapped_column(String(64))
    customer_name: Mapped[Optional[str]] = mapped_column(String(200))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))

    # [{product_id, external_product_id, product_name, quantity, price}]
    line_items: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, default=list)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status: Mapped[OrderStatus] = mapped_column(
        _enum(OrderStatus, "order_status"), default=OrderStatus.PENDING
    )
    order_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    shipping_address: Mapped[Optional[str]] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_orders_tenant_external"),
        CheckConstraint("total >= 0", name="ck_orders_total"),
        Index("ix_orders_tenant_date", "tenant_id", "order_date"),
        Index("ix_orders_tenant_status", "tenant_id", "status"),
    )


class CustomEvent(Base):
    """Append-only behavioral event"""
    __tablename__ = "custom_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    event_type: Mapped[EventKind] = mapped_column(_enum(EventKind, "event_kind"), nullable=False)
    session_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(100))
    data: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_custom_events_tenant_time", "tenant_id", "timestamp"),
        Index("ix_custom_events_tenant_type", "tenant_id", "event_type"),
    )
