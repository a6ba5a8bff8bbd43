"""
Tenants API Endpoints

Registration is open; every other route acts on the tenant named by the
``X-Tenant-ID`` header.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.database import get_db_dependency
from storelens.serving.api.dependencies import commit_and_invalidate, get_tenant_id
from storelens.serving.api.schemas import TenantResponse
from storelens.tenancy import TenantRegistration, TenantResolver, TenantService

router = APIRouter()


class AccessTokenUpdate(BaseModel):
    shopify_access_token: Optional[str] = None


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def register_tenant(
    registration: TenantRegistration,
    db: AsyncSession = Depends(get_db_dependency),
):
    """Create a store with default settings and its admin owner."""
    return await TenantService(db).register(registration)


@router.get("/current", response_model=TenantResponse)
async def get_current_tenant(
    tenant_id: UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db_dependency),
):
    return await TenantResolver(db).get_tenant(tenant_id)


@router.patch("/current/settings", response_model=TenantResponse)
async def update_settings(
    patch: Dict[str, Any] = Body(...),
    tenant_id: UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db_dependency),
):
    """Merge theme, currency, timezone or feature changes into the settings."""
    return await TenantService(db).update_settings(tenant_id, patch)


@router.put("/current/shopify-token", response_model=TenantResponse)
async def set_access_token(
    update: AccessTokenUpdate,
    tenant_id: UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db_dependency),
):
    return await TenantService(db).set_access_token(tenant_id, update.shopify_access_token)


@router.post("/current/deactivate", response_model=TenantResponse)
async def deactivate_tenant(
    tenant_id: UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db_dependency),
):
    """Soft-delete: records are kept, the tenant stops resolving and syncing."""
    tenant = await TenantService(db).deactivate(tenant_id)
    await commit_and_invalidate(db, tenant_id)
    return tenant
