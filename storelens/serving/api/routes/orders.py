"""
Orders API Endpoints

Order listing by status and date range, and status changes along the order
lifecycle.
"""

from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from storelens.database.models import OrderStatus
from storelens.serving.api.dependencies import commit_and_invalidate, get_dashboard
from storelens.serving.api.schemas import ListResponse, OrderResponse, OrderStatusUpdate, paginate
from storelens.services import DashboardService

router = APIRouter()


@router.get("", response_model=ListResponse[OrderResponse])
async def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=250),
    status: Optional[OrderStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=100),
    service: DashboardService = Depends(get_dashboard),
):
    """
    List orders, newest first.

    ``start_date`` and ``end_date`` are inclusive calendar days (UTC).
    """
    result = await service.list_orders(
        status=status,
        since=datetime.combine(start_date, time.min) if start_date else None,
        until=datetime.combine(end_date, time.max) if end_date else None,
        search=search,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return paginate(result, page, page_size, OrderResponse)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    service: DashboardService = Depends(get_dashboard),
):
    return await service.get_order(order_id)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: UUID,
    update: OrderStatusUpdate,
    service: DashboardService = Depends(get_dashboard),
):
    """Move an order forward, or cancel it before it ships (409 otherwise)."""
    order = await service.update_order_status(order_id, update.status)
    await commit_and_invalidate(service, service.tenant_id)
    return order
