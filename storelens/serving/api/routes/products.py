"""
Products API Endpoints

Product catalog listing and local edits for the calling tenant.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from storelens.database.models import RecordStatus
from storelens.repository.schemas import ProductCreate, ProductUpdate
from storelens.serving.api.dependencies import commit_and_invalidate, get_dashboard
from storelens.serving.api.schemas import ListResponse, ProductResponse, paginate
from storelens.services import DashboardService

router = APIRouter()


@router.get("", response_model=ListResponse[ProductResponse])
async def list_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=250),
    search: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = None,
    status: Optional[RecordStatus] = None,
    service: DashboardService = Depends(get_dashboard),
):
    """List products, newest first, with name search and filters."""
    result = await service.list_products(
        search=search,
        category=category,
        status=status,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return paginate(result, page, page_size, ProductResponse)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: UUID,
    service: DashboardService = Depends(get_dashboard),
):
    return await service.get_product(product_id)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    service: DashboardService = Depends(get_dashboard),
):
    created = await service.create_product(product)
    await commit_and_invalidate(service, service.tenant_id)
    return created


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: UUID,
    update: ProductUpdate,
    service: DashboardService = Depends(get_dashboard),
):
    """Partial update; pushed to Shopify when local edit push is enabled."""
    updated = await service.update_product(product_id, update)
    await commit_and_invalidate(service, service.tenant_id)
    return updated


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: UUID,
    service: DashboardService = Depends(get_dashboard),
) -> Response:
    await service.delete_product(product_id)
    await commit_and_invalidate(service, service.tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
