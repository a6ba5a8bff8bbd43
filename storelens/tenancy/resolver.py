"""
Tenant Resolver

Maps an inbound shop domain to the tenant that owns it. Read-only: tenants
are created and deactivated by ``storelens.tenancy.service``.
"""

from dataclasses import dataclass
from typing import List, Optional, Union
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.database.models import Tenant, TenantStatus
from storelens.exceptions import TenantNotFound

logger = structlog.get_logger(__name__)


def normalize_domain(domain: str) -> str:
    """
    Canonical form of a shop domain.

    ``https://Acme.myshopify.com/`` and ``acme.myshopify.com`` are the same shop.
    """
    value = (domain or "").strip().lower()
    for scheme in ("https://", "http://"):
        if value.startswith(scheme):
            value = value[len(scheme):]
    return value.split("/", 1)[0]


@dataclass(frozen=True)
class SyncTarget:
    """Credentials needed to pull one tenant's data from Shopify"""
    tenant_id: UUID
    domain: str
    access_token: Optional[str]


class TenantResolver:
    """Tenant lookups by domain or id"""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def resolve_tenant(self, domain: str) -> UUID:
        """
        Tenant id for an active shop domain.

        Raises:
            TenantNotFound: domain is unregistered or its tenant is inactive
        """
        tenant = await self._find_by_domain(domain)
        if tenant is None or tenant.status != TenantStatus.ACTIVE:
            logger.info("Tenant not resolved", domain=domain)
            raise TenantNotFound(domain)
        return tenant.id

    async def get_tenant(self, tenant_id: Union[UUID, str], active_only: bool = True) -> Tenant:
        """
        Tenant row by id.

        Raises:
            TenantNotFound: unknown id, malformed id, or inactive tenant
                when ``active_only`` is set
        """
        try:
            key = tenant_id if isinstance(tenant_id, UUID) else UUID(str(tenant_id))
        except ValueError:
            raise TenantNotFound(tenant_id)

        tenant = await self._session.get(Tenant, key)
        if tenant is None or (active_only and tenant.status != TenantStatus.ACTIVE):
            raise TenantNotFound(tenant_id)
        return tenant

    async def active_sync_targets(self) -> List[SyncTarget]:
        """Every active tenant, oldest first"""
        result = await self._session.execute(
            select(Tenant)
            .where(Tenant.status == TenantStatus.ACTIVE)
            .order_by(Tenant.created_at, Tenant.id)
        )
        return [
            SyncTarget(tenant_id=t.id, domain=t.domain, access_token=t.shopify_access_token)
            for t in result.scalars().all()
        ]

    async def _find_by_domain(self, domain: str) -> Optional[Tenant]:
        normalized = normalize_domain(domain)
        if not normalized:
            return None
        result = await self._session.execute(select(Tenant).where(Tenant.domain == normalized))
        return result.scalar_one_or_none()
