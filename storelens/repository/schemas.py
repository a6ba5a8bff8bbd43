"""
Canonical Record Schemas

Pydantic models describing the canonical shape of each tenant-scoped record.
The Record Mapper produces them from Shopify payloads and the repository
validates every create/update through them. None of them carries a tenant
id: the repository stamps it.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storelens.database.models import EventKind, OrderStatus, RecordStatus

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Quantize a decimal amount to cents"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class _Canonical(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=False)


# =============================================================================
# PRODUCTS
# =============================================================================

class ProductRecord(_Canonical):
    """Canonical product"""
    id: Optional[UUID] = None
    external_id: Optional[str] = None
    name: str = Field(min_length=1, max_length=255)
    category: str = Field(default="Uncategorized", max_length=100)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    stock: int = Field(default=0, ge=0)
    sales: int = Field(default=0, ge=0)
    rating: float = Field(default=0.0, ge=0, le=5)
    image: Optional[str] = None
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: Optional[datetime] = None

    @field_validator("price")
    @classmethod
    def _quantize_price(cls, v: Decimal) -> Decimal:
        return to_money(v)


class ProductCreate(_Canonical):
    """Product entered on the dashboard; Shopify identity and timestamps are not settable"""
    name: str = Field(min_length=1, max_length=255)
    category: str = Field(default="Uncategorized", max_length=100)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    stock: int = Field(default=0, ge=0)
    sales: int = Field(default=0, ge=0)
    rating: float = Field(default=0.0, ge=0, le=5)
    image: Optional[str] = None
    status: RecordStatus = RecordStatus.ACTIVE

    @field_validator("price")
    @classmethod
    def _quantize_price(cls, v: Decimal) -> Decimal:
        return to_money(v)


class ProductUpdate(_Canonical):
    """Partial product update"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    price: Optional[Decimal] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    sales: Optional[int] = Field(default=None, ge=0)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    image: Optional[str] = None
    status: Optional[RecordStatus] = None

    @field_validator("price")
    @classmethod
    def _quantize_price(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return None if v is None else to_money(v)


# =============================================================================
# CUSTOMERS
# =============================================================================

class CustomerRecord(_Canonical):
    """Canonical customer"""
    id: Optional[UUID] = None
    external_id: Optional[str] = None
    name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    total_orders: int = Field(default=0, ge=0)
    total_spent: Decimal = Field(default=Decimal("0"), ge=0)
    join_date: Optional[datetime] = None
    status: RecordStatus = RecordStatus.ACTIVE

    @field_validator("total_spent")
    @classmethod
    def _quantize_spent(cls, v: Decimal) -> Decimal:
        return to_money(v)


class CustomerUpdate(_Canonical):
    """Partial customer update (sync side effects only)"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    total_orders: Optional[int] = Field(default=None, ge=0)
    total_spent: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[RecordStatus] = None


# =============================================================================
# ORDERS
# =============================================================================

class OrderLineItem(_Canonical):
    """One order line"""
    product_id: Optional[UUID] = None
    external_product_id: Optional[str] = None
    product_name: str
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


def order_total(items: Iterable[OrderLineItem]) -> Decimal:
    """Sum of quantity * unit price over the line items, in cents"""
    return to_money(sum((item.subtotal for item in items), Decimal("0")))


class OrderRecord(_Canonical):
    """
    Canonical order.

    ``total`` may be omitted; when given it must match the line items.
    """
    id: Optional[UUID] = None
    external_id: Optional[str] = None
    customer_id: Optional[UUID] = None
    customer_external_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    line_items: List[OrderLineItem] = Field(default_factory=list)
    total: Optional[Decimal] = None
    status: OrderStatus = OrderStatus.PENDING
    order_date: Optional[datetime] = None
    shipping_address: Optional[str] = None

    @model_validator(mode="after")
    def _check_total(self) -> "OrderRecord":
        if self.total is not None and to_money(self.total) != order_total(self.line_items):
            raise ValueError(
                f"total {self.total} does not match line items ({order_total(self.line_items)})"
            )
        return self


class OrderUpdate(_Canonical):
    """Partial order update"""
    status: Optional[OrderStatus] = None
    shipping_address: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    line_items: Optional[List[OrderLineItem]] = None


# =============================================================================
# CUSTOM EVENTS
# =============================================================================

class CustomEventRecord(_Canonical):
    """Append-only behavioral event as stored"""
    id: Optional[UUID] = None
    event_type: EventKind
    session_id: str = Field(min_length=1, max_length=100)
    user_id: Optional[str] = Field(default=None, max_length=100)
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
