"""
Shopify Ingestion Module
"""
from .mapper import MappingBatch, map_many, to_canonical, to_external_patch
from .scheduler import AsyncioTimer, SyncScheduler, active_targets_provider
from .shopify_client import ShopifyClient
from .sync import SyncResult, TenantSyncService
from .webhooks import WebhookDispatcher, WebhookNotification, WebhookResult

__all__ = [
    "AsyncioTimer",
    "MappingBatch",
    "ShopifyClient",
    "SyncResult",
    "SyncScheduler",
    "TenantSyncService",
    "WebhookDispatcher",
    "WebhookNotification",
    "WebhookResult",
    "active_targets_provider",
    "map_many",
    "to_canonical",
    "to_external_patch",
]
