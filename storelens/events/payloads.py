"""
Custom Event Payloads

One payload model per event kind, discriminated by ``kind``. Payloads for
kinds outside ``EventKind`` are rejected at validation time.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from storelens.database.models import EventKind, utcnow
from storelens.exceptions import InvalidRecord


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CartAbandonedPayload(_Payload):
    kind: Literal["cart_abandoned"] = "cart_abandoned"
    cart_items: List[Dict[str, Any]] = Field(default_factory=list)
    cart_value: Decimal = Field(default=Decimal("0"), ge=0)
    checkout_url: Optional[str] = None
    page_url: Optional[str] = None
    abandoned_at: datetime = Field(default_factory=utcnow)


class CheckoutStartedPayload(_Payload):
    kind: Literal["checkout_started"] = "checkout_started"
    cart_items: List[Dict[str, Any]] = Field(default_factory=list)
    cart_value: Decimal = Field(default=Decimal("0"), ge=0)
    checkout_step: str = "initiated"
    order_id: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)


class ProductViewedPayload(_Payload):
    kind: Literal["product_viewed"] = "product_viewed"
    product_id: str
    product_name: Optional[str] = None
    product_category: Optional[str] = None
    product_price: Optional[Decimal] = Field(default=None, ge=0)
    referrer: Optional[str] = None
    viewed_at: datetime = Field(default_factory=utcnow)


class UserRegisteredPayload(_Payload):
    kind: Literal["user_registered"] = "user_registered"
    registration_method: str = "email"
    user_role: str = "customer"
    customer_id: Optional[str] = None
    registered_at: datetime = Field(default_factory=utcnow)


class DataSyncCompletedPayload(_Payload):
    kind: Literal["data_sync_completed"] = "data_sync_completed"
    products_count: int = Field(default=0, ge=0)
    customers_count: int = Field(default=0, ge=0)
    orders_count: int = Field(default=0, ge=0)
    failed_records: int = Field(default=0, ge=0)
    sync_time: datetime = Field(default_factory=utcnow)


EventPayload = Annotated[
    Union[
        CartAbandonedPayload,
        CheckoutStartedPayload,
        ProductViewedPayload,
        UserRegisteredPayload,
        DataSyncCompletedPayload,
    ],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter = TypeAdapter(EventPayload)


def parse_event_payload(kind: Union[EventKind, str], data: Optional[Mapping[str, Any]] = None) -> EventPayload:
    """
    Validate ``data`` as the payload of ``kind``.

    Raises:
        InvalidRecord: unknown kind or payload not matching the kind's shape
    """
    try:
        kind_value = EventKind(kind).value
    except ValueError:
        raise InvalidRecord(f"Unknown event kind: {kind}")

    try:
        return _payload_adapter.validate_python({**dict(data or {}), "kind": kind_value})
    except ValidationError as e:
        raise InvalidRecord(
            f"Invalid {kind_value} payload",
            errors=e.errors(include_url=False, include_context=False),
        ) from e
