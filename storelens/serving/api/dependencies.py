"""
Request Dependencies

Callers identify themselves with three client-persisted headers:

- ``X-Tenant-ID``: the store whose data is read or written (required on
  tenant-scoped routes)
- ``X-User-ID``: the dashboard user, recorded on events
- ``X-Session-ID``: the browser session, recorded on events

Operational routes instead require ``X-Admin-Token`` matching
``ADMIN_API_TOKEN``.
"""

import hmac
from typing import Optional, Union
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.config import Settings, get_settings
from storelens.database import get_db_dependency
from storelens.exceptions import TenantNotFound, Unauthorized
from storelens.serving.cache import invalidate_tenant
from storelens.services import DashboardService
from storelens.tenancy import TenantResolver

TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"
SESSION_HEADER = "X-Session-ID"
ADMIN_HEADER = "X-Admin-Token"


async def get_tenant_id(
    x_tenant_id: Optional[str] = Header(default=None, alias=TENANT_HEADER),
    db: AsyncSession = Depends(get_db_dependency),
) -> UUID:
    """Active tenant named by the request, or 401"""
    if not x_tenant_id:
        raise Unauthorized(f"Missing {TENANT_HEADER} header")
    try:
        tenant = await TenantResolver(db).get_tenant(x_tenant_id)
    except TenantNotFound:
        raise Unauthorized(f"Unknown or inactive tenant: {x_tenant_id}")
    return tenant.id


def get_user_id(x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER)) -> Optional[str]:
    return x_user_id or None


def get_session_id(x_session_id: Optional[str] = Header(default=None, alias=SESSION_HEADER)) -> Optional[str]:
    return x_session_id or None


def get_dashboard(
    tenant_id: UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db_dependency),
    settings: Settings = Depends(get_settings),
) -> DashboardService:
    return DashboardService(db, tenant_id, settings=settings)


async def commit_and_invalidate(unit: Union[AsyncSession, DashboardService], tenant_id: UUID) -> None:
    """Commit the request's writes, then drop the tenant's cached analytics"""
    await unit.commit()
    await invalidate_tenant(tenant_id)


def require_admin(
    x_admin_token: Optional[str] = Header(default=None, alias=ADMIN_HEADER),
    settings: Settings = Depends(get_settings),
) -> None:
    """401 unless the request carries the configured admin token"""
    expected = settings.security.admin_api_token
    if expected is None or not expected.get_secret_value():
        raise Unauthorized("Admin endpoints are disabled: ADMIN_API_TOKEN is not set")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected.get_secret_value()):
        raise Unauthorized(f"Missing or invalid {ADMIN_HEADER} header")
