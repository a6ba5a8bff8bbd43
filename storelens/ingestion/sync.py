"""
Per-Tenant Sync Pipeline

Fetches a tenant's products, customers and orders from Shopify, maps them and
upserts them, then records a ``data_sync_completed`` event.

Order matters: products, then customers, then orders, so that order line
items and customer references resolve to rows written in the same run.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, List, Optional
from uuid import UUID
import time

import structlog
from prometheus_client import Counter, Histogram
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.database import get_db
from storelens.database.models import utcnow
from storelens.events.tracker import EventTracker
from storelens.exceptions import StoreLensError
from storelens.ingestion.mapper import CanonicalRecord, map_many
from storelens.ingestion.shopify_client import ShopifyClient
from storelens.repository import EntityKind, TenantRepository
from storelens.tenancy.resolver import SyncTarget

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

TENANT_SYNCS = Counter(
    "storelens_tenant_syncs_total",
    "Per-tenant sync pipeline runs",
    ["status"],
)

SYNC_RECORDS = Counter(
    "storelens_sync_records_total",
    "Records processed by the sync pipeline",
    ["kind", "outcome"],
)

TENANT_SYNC_DURATION = Histogram(
    "storelens_tenant_sync_duration_seconds",
    "Time spent syncing one tenant",
)

SYNC_ORDER = (EntityKind.PRODUCTS, EntityKind.CUSTOMERS, EntityKind.ORDERS)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]
ClientFactory = Callable[[SyncTarget], ShopifyClient]


@dataclass
class SyncResult:
    """Outcome of one tenant's pipeline run"""
    tenant_id: UUID
    domain: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    fetched: Dict[str, int] = field(default_factory=dict)
    created: Dict[str, int] = field(default_factory=dict)
    updated: Dict[str, int] = field(default_factory=dict)
    failed: int = 0
    skipped: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": str(self.tenant_id),
            "domain": self.domain,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "fetched": self.fetched,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "skipped": self.skipped,
            "error": self.error,
        }


def _default_client(target: SyncTarget) -> ShopifyClient:
    return ShopifyClient(target.domain, target.access_token)


class TenantSyncService:
    """
    Runs the sync pipeline for one tenant at a time.

    Each call to ``sync`` opens its own session, so concurrent tenants never
    share a transaction.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_db,
        client_factory: ClientFactory = _default_client,
        after_sync: Optional[Callable[[UUID], Awaitable[None]]] = None,
    ):
        self._session_factory = session_factory
        self._client_factory = client_factory
        self._after_sync = after_sync

    async def __call__(self, target: SyncTarget) -> SyncResult:
        return await self.sync(target)

    async def sync(self, target: SyncTarget) -> SyncResult:
        """
        Pull, map and upsert everything for ``target``.

        Malformed or rejected records are skipped and counted; the rest of
        the batch still lands. Errors that abort the run propagate.
        """
        result = SyncResult(tenant_id=target.tenant_id, domain=target.domain, started_at=utcnow())
        log = logger.bind(tenant_id=str(target.tenant_id), domain=target.domain)

        if not target.access_token:
            result.skipped = True
            result.finished_at = utcnow()
            TENANT_SYNCS.labels(status="skipped").inc()
            log.info("Tenant has no Shopify access token, skipping sync")
            return result

        start = time.perf_counter()
        try:
            raw = await self._fetch(target)
            async with self._session_factory() as session:
                repo = TenantRepository(session, target.tenant_id)
                for kind in SYNC_ORDER:
                    await self._ingest(repo, kind, raw[kind], result)

                await EventTracker(repo).data_sync_completed(
                    f"sync-{result.started_at:%Y%m%dT%H%M%S}",
                    products_count=self._landed(result, EntityKind.PRODUCTS),
                    customers_count=self._landed(result, EntityKind.CUSTOMERS),
                    orders_count=self._landed(result, EntityKind.ORDERS),
                    failed_records=result.failed,
                )
        except Exception as e:
            TENANT_SYNCS.labels(status="failed").inc()
            result.error = str(e)
            log.error("Tenant sync failed", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            result.finished_at = utcnow()
            TENANT_SYNC_DURATION.observe(time.perf_counter() - start)

        TENANT_SYNCS.labels(status="succeeded").inc()
        log.info(
            "Tenant sync complete",
            fetched=result.fetched,
            created=result.created,
            updated=result.updated,
            failed=result.failed,
        )

        if self._after_sync is not None:
            await self._after_sync(target.tenant_id)
        return result

    async def _fetch(self, target: SyncTarget) -> Dict[EntityKind, List[Dict[str, Any]]]:
        client = self._client_factory(target)
        try:
            products, customers, orders = await asyncio.gather(
                client.fetch_products(),
                client.fetch_customers(),
                client.fetch_orders(),
            )
        finally:
            await client.close()
        return {
            EntityKind.PRODUCTS: products,
            EntityKind.CUSTOMERS: customers,
            EntityKind.ORDERS: orders,
        }

    async def _ingest(
        self,
        repo: TenantRepository,
        kind: EntityKind,
        records: List[Dict[str, Any]],
        result: SyncResult,
    ) -> None:
        batch = map_many(kind, records)
        result.fetched[kind.value] = len(records)
        result.failed += len(batch.failures)
        SYNC_RECORDS.labels(kind=kind.value, outcome="malformed").inc(len(batch.failures))

        created = updated = 0
        for record in batch.records:
            outcome = await self._upsert(repo, kind, record, result)
            if outcome is True:
                created += 1
            elif outcome is False:
                updated += 1
        result.created[kind.value] = created
        result.updated[kind.value] = updated

    async def _upsert(
        self,
        repo: TenantRepository,
        kind: EntityKind,
        record: CanonicalRecord,
        result: SyncResult,
    ) -> Optional[bool]:
        """True when created, False when updated, None when rejected"""
        try:
            async with repo.session.begin_nested():
                upserted = await repo.upsert_by_external_id(kind, record)
        except (StoreLensError, SQLAlchemyError) as e:
            result.failed += 1
            SYNC_RECORDS.labels(kind=kind.value, outcome="rejected").inc()
            logger.warning(
                "Record rejected during sync",
                tenant_id=str(repo.tenant_id),
                kind=kind.value,
                external_id=getattr(record, "external_id", None),
                error=str(e),
            )
            return None

        outcome = "created" if upserted.created else "updated"
        SYNC_RECORDS.labels(kind=kind.value, outcome=outcome).inc()
        return upserted.created

    @staticmethod
    def _landed(result: SyncResult, kind: EntityKind) -> int:
        return result.created.get(kind.value, 0) + result.updated.get(kind.value, 0)
