"""
Tenant-Scoped Repository Module
"""
from .tenant_repository import EntityKind, ListFilter, TenantRepository, UpsertResult

__all__ = [
    "EntityKind",
    "ListFilter",
    "TenantRepository",
    "UpsertResult",
]
