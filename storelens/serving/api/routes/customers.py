"""
Customers API Endpoints

Read-only: customers change only through Shopify sync and order side effects.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from storelens.analytics.aggregator import TopCustomer
from storelens.database.models import RecordStatus
from storelens.serving.api.dependencies import get_dashboard
from storelens.serving.api.schemas import CustomerResponse, ListResponse, paginate
from storelens.services import DashboardService

router = APIRouter()


@router.get("", response_model=ListResponse[CustomerResponse])
async def list_customers(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=250),
    search: Optional[str] = Query(None, max_length=100),
    status: Optional[RecordStatus] = None,
    service: DashboardService = Depends(get_dashboard),
):
    result = await service.list_customers(
        search=search,
        status=status,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return paginate(result, page, page_size, CustomerResponse)


@router.get("/top", response_model=List[TopCustomer])
async def top_customers(
    limit: int = Query(5, ge=1, le=100),
    service: DashboardService = Depends(get_dashboard),
) -> List[TopCustomer]:
    """Highest spenders; ties broken by order count, then id."""
    return await service.top_customers(limit)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: UUID,
    service: DashboardService = Depends(get_dashboard),
):
    return await service.get_customer(customer_id)
