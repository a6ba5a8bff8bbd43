"""
API Response Models
"""

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storelens.database.models import EventKind, OrderStatus, RecordStatus, TenantStatus
from storelens.repository.schemas import OrderLineItem

T = TypeVar("T")


class _FromRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ProductResponse(_FromRecord):
    id: UUID
    external_id: Optional[str] = None
    name: str
    category: str
    price: float
    stock: int
    sales: int
    rating: float
    image: Optional[str] = None
    status: RecordStatus
    created_at: datetime
    updated_at: datetime


class CustomerResponse(_FromRecord):
    id: UUID
    external_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    total_orders: int
    total_spent: float
    join_date: datetime
    status: RecordStatus
    created_at: datetime


class OrderResponse(_FromRecord):
    id: UUID
    external_id: Optional[str] = None
    customer_id: Optional[UUID] = None
    customer_external_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    line_items: List[OrderLineItem]
    total: float
    status: OrderStatus
    order_date: datetime
    shipping_address: Optional[str] = None
    updated_at: datetime


class EventResponse(_FromRecord):
    id: UUID
    event_type: EventKind
    session_id: str
    user_id: Optional[str] = None
    data: Dict[str, Any]
    timestamp: datetime


class TenantResponse(_FromRecord):
    id: UUID
    name: str
    domain: str
    settings: Dict[str, Any]
    status: TenantStatus
    created_at: datetime


class ListResponse(BaseModel, Generic[T]):
    """Paginated listing"""
    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int


def paginate(page_data, page: int, page_size: int, model) -> Dict[str, Any]:
    return {
        "items": [model.model_validate(item) for item in page_data.items],
        "total": page_data.total,
        "page": page,
        "page_size": page_size,
        "total_pages": (page_data.total + page_size - 1) // page_size,
    }


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class TrackEventRequest(BaseModel):
    event_type: str = Field(min_length=1)
    session_id: Optional[str] = Field(default=None, max_length=100)
    user_id: Optional[str] = Field(default=None, max_length=100)
    data: Dict[str, Any] = Field(default_factory=dict)


class TrackEventResponse(BaseModel):
    tracked: bool
