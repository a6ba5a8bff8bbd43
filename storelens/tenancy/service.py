"""
Tenant Lifecycle

Registration (tenant plus owner account), settings updates and soft
deactivation. Tenants are never hard-deleted.
"""

from typing import Any, Dict, List, Literal, Mapping, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.database.models import Tenant, TenantStatus, User, UserRole
from storelens.exceptions import InvalidRecord
from storelens.tenancy.resolver import TenantResolver, normalize_domain

logger = structlog.get_logger(__name__)


class TenantSettings(BaseModel):
    """Per-tenant dashboard preferences"""
    model_config = ConfigDict(extra="ignore")

    theme: Literal["light", "dark"] = "light"
    currency: str = Field(default="USD", min_length=3, max_length=3)
    timezone: str = "UTC"
    features: List[str] = Field(default_factory=lambda: ["analytics", "events", "sync"])


class TenantRegistration(BaseModel):
    """New store and its owner account"""
    name: str = Field(min_length=1, max_length=200)
    domain: str = Field(min_length=1, max_length=255)
    owner_name: str = Field(min_length=1, max_length=200)
    owner_email: EmailStr
    shopify_access_token: Optional[str] = None
    settings: Optional[TenantSettings] = None


class TenantService:
    """Creates and maintains tenants"""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._resolver = TenantResolver(session)

    async def register(self, registration: Union[TenantRegistration, Mapping[str, Any]]) -> Tenant:
        """
        Create a tenant with default settings and an admin owner.

        Raises:
            InvalidRecord: invalid input or domain already registered
        """
        try:
            data = (
                registration
                if isinstance(registration, TenantRegistration)
                else TenantRegistration.model_validate(dict(registration))
            )
        except ValidationError as e:
            raise InvalidRecord(
                "Invalid tenant registration",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

        domain = normalize_domain(data.domain)
        existing = await self._session.execute(select(Tenant.id).where(Tenant.domain == domain))
        if existing.scalar_one_or_none() is not None:
            raise InvalidRecord(f"Domain already registered: {domain}", domain=domain)

        tenant = Tenant(
            name=data.name,
            domain=domain,
            settings=(data.settings or TenantSettings()).model_dump(),
            status=TenantStatus.ACTIVE,
            shopify_access_token=data.shopify_access_token,
        )
        self._session.add(tenant)
        try:
            await self._session.flush()
            self._session.add(
                User(
                    tenant_id=tenant.id,
                    name=data.owner_name,
                    email=str(data.owner_email).lower(),
                    role=UserRole.ADMIN,
                )
            )
            await self._session.flush()
        except IntegrityError as e:
            raise InvalidRecord(f"Domain already registered: {domain}", domain=domain) from e

        logger.info("Tenant registered", tenant_id=str(tenant.id), domain=domain)
        return tenant

    async def update_settings(self, tenant_id: UUID, patch: Mapping[str, Any]) -> Tenant:
        """Merge ``patch`` into the tenant's settings"""
        tenant = await self._resolver.get_tenant(tenant_id)
        merged: Dict[str, Any] = {**(tenant.settings or {}), **dict(patch)}
        try:
            tenant.settings = TenantSettings.model_validate(merged).model_dump()
        except ValidationError as e:
            raise InvalidRecord(
                "Invalid tenant settings",
                errors=e.errors(include_url=False, include_context=False),
            ) from e
        await self._session.flush()
        return tenant

    async def set_access_token(self, tenant_id: UUID, access_token: Optional[str]) -> Tenant:
        tenant = await self._resolver.get_tenant(tenant_id)
        tenant.shopify_access_token = access_token
        await self._session.flush()
        return tenant

    async def deactivate(self, tenant_id: UUID) -> Tenant:
        """Soft-delete: the tenant stops resolving and is skipped by sweeps"""
        tenant = await self._resolver.get_tenant(tenant_id)
        tenant.status = TenantStatus.INACTIVE
        await self._session.flush()
        logger.info("Tenant deactivated", tenant_id=str(tenant.id))
        return tenant

    async def users(self, tenant_id: UUID) -> List[User]:
        result = await self._session.execute(
            select(User).where(User.tenant_id == tenant_id).order_by(User.created_at)
        )
        return list(result.scalars().all())
