"""
Tenancy Module
"""
from .resolver import SyncTarget, TenantResolver, normalize_domain
from .service import TenantRegistration, TenantService, TenantSettings

__all__ = [
    "SyncTarget",
    "TenantRegistration",
    "TenantResolver",
    "TenantService",
    "TenantSettings",
    "normalize_domain",
]
