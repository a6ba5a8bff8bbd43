"""
Unit Tests for the Periodic Sync Scheduler
"""
import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import httpx
import pytest

from storelens.database.models import EventKind
from storelens.events import EventTracker
from storelens.ingestion.scheduler import SyncScheduler, active_targets_provider
from storelens.ingestion.shopify_client import ShopifyClient
from storelens.ingestion.sync import SyncResult, TenantSyncService
from storelens.repository import EntityKind, TenantRepository
from storelens.tenancy import TenantService
from storelens.tenancy.resolver import SyncTarget


class FakeHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimer:
    """Records scheduled callbacks instead of running them"""

    def __init__(self):
        self.soon = []
        self.repeating = []

    def call_soon(self, callback):
        self.soon.append(callback)

    def call_every(self, interval_seconds, callback):
        handle = FakeHandle()
        self.repeating.append((interval_seconds, callback, handle))
        return handle

    @property
    def active(self):
        return [r for r in self.repeating if not r[2].cancelled]


def make_target(domain):
    return SyncTarget(tenant_id=uuid4(), domain=domain, access_token="token")


class RecordingSyncer:
    def __init__(self, failing=()):
        self.calls = []
        self.failing = set(failing)

    async def __call__(self, target):
        self.calls.append(target.domain)
        if target.domain in self.failing:
            raise RuntimeError(f"{target.domain} exploded")
        return SyncResult(tenant_id=target.tenant_id, domain=target.domain, started_at=datetime(2024, 1, 1))


def provider_of(targets):
    async def _provider():
        return list(targets)

    return _provider


class TestTimerLifecycle:
    """start/stop/restart"""

    def test_start_schedules_one_repeating_timer_and_an_immediate_tick(self):
        timer = FakeTimer()
        scheduler = SyncScheduler(RecordingSyncer(), provider_of([]), interval=timedelta(minutes=15), timer=timer)

        scheduler.start()

        assert scheduler.is_running
        assert len(timer.soon) == 1
        assert [r[0] for r in timer.active] == [900.0]

    def test_restart_keeps_a_single_timer(self):
        timer = FakeTimer()
        scheduler = SyncScheduler(RecordingSyncer(), provider_of([]), interval=5, timer=timer)

        scheduler.start()
        scheduler.start()

        assert len(timer.repeating) == 2
        assert len(timer.active) == 1
        assert timer.active[0][0] == 300.0

    def test_stop_cancels_and_is_idempotent(self):
        timer = FakeTimer()
        scheduler = SyncScheduler(RecordingSyncer(), provider_of([]), timer=timer)

        scheduler.stop()
        scheduler.start()
        scheduler.stop()
        scheduler.stop()

        assert not scheduler.is_running
        assert timer.active == []

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            SyncScheduler(RecordingSyncer(), provider_of([]), interval=0, timer=FakeTimer())

    def test_status(self):
        scheduler = SyncScheduler(RecordingSyncer(), provider_of([]), interval=15, timer=FakeTimer())
        assert scheduler.status() == {
            "running": False,
            "interval_minutes": 15.0,
            "sweep_in_progress": False,
            "last_sweep": None,
        }


class TestSweeps:
    """run_sweep behavior"""

    async def test_scheduled_tick_runs_a_sweep(self):
        timer = FakeTimer()
        syncer = RecordingSyncer()
        scheduler = SyncScheduler(syncer, provider_of([make_target("a.myshopify.com")]), timer=timer)

        scheduler.start()
        await timer.soon[0]()

        assert syncer.calls == ["a.myshopify.com"]
        assert scheduler.last_report.succeeded == 1

    async def test_failing_tenant_does_not_affect_others(self):
        targets = [make_target("a.myshopify.com"), make_target("b.myshopify.com"), make_target("c.myshopify.com")]
        syncer = RecordingSyncer(failing={"b.myshopify.com"})
        scheduler = SyncScheduler(syncer, provider_of(targets), timer=FakeTimer())

        report = await scheduler.run_sweep()

        assert sorted(syncer.calls) == ["a.myshopify.com", "b.myshopify.com", "c.myshopify.com"]
        assert report.succeeded == 2
        assert report.failed == 1
        failed = [r for r in report.results if not r.succeeded][0]
        assert failed.domain == "b.myshopify.com"
        assert "exploded" in failed.error

    async def test_overlapping_tick_is_skipped(self):
        release = asyncio.Event()
        calls = []

        async def slow_syncer(target):
            calls.append(target.domain)
            await release.wait()
            return SyncResult(tenant_id=target.tenant_id, domain=target.domain, started_at=datetime(2024, 1, 1))

        scheduler = SyncScheduler(slow_syncer, provider_of([make_target("a.myshopify.com")]), timer=FakeTimer())

        first = asyncio.ensure_future(scheduler.run_sweep())
        await asyncio.sleep(0)
        assert scheduler.status()["sweep_in_progress"] is True

        assert await scheduler.run_sweep() is None

        release.set()
        report = await first
        assert report.succeeded == 1
        assert calls == ["a.myshopify.com"]
        assert scheduler.status()["sweep_in_progress"] is False

    async def test_provider_failure_is_reported(self):
        async def broken_provider():
            raise RuntimeError("database down")

        scheduler = SyncScheduler(RecordingSyncer(), broken_provider, timer=FakeTimer())
        report = await scheduler.run_sweep()

        assert report.error == "database down"
        assert report.results == []
        assert scheduler.status()["sweep_in_progress"] is False

    async def test_stop_lets_running_sweep_finish(self):
        release = asyncio.Event()

        async def slow_syncer(target):
            await release.wait()
            return SyncResult(tenant_id=target.tenant_id, domain=target.domain, started_at=datetime(2024, 1, 1))

        scheduler = SyncScheduler(slow_syncer, provider_of([make_target("a.myshopify.com")]), timer=FakeTimer())
        scheduler.start()
        sweep = asyncio.ensure_future(scheduler.run_sweep())
        await asyncio.sleep(0)

        scheduler.stop()
        release.set()

        report = await sweep
        assert report.succeeded == 1
        assert scheduler.last_report is report

    async def test_report_uses_injected_clock(self):
        now = datetime(2024, 5, 1, 9, 30)
        scheduler = SyncScheduler(RecordingSyncer(), provider_of([]), timer=FakeTimer(), clock=lambda: now)

        report = await scheduler.run_sweep()

        assert report.started_at == now
        assert report.to_dict()["tenants"] == 0


async def test_active_targets_provider_reads_active_tenants(session_scope, test_db, tenant, other_tenant):
    await TenantService(test_db).deactivate(other_tenant.id)
    await test_db.commit()

    targets = await active_targets_provider(session_scope)()

    assert [t.domain for t in targets] == ["acme.myshopify.com"]


async def test_sweep_with_real_pipeline_isolates_a_failing_tenant(
    session_scope, test_db, tenant, other_tenant, shopify_product, shopify_customer, shopify_order
):
    payloads = {"products": [shopify_product], "customers": [shopify_customer], "orders": [shopify_order]}

    def handler(request: httpx.Request) -> httpx.Response:
        resource = request.url.path.rsplit("/", 1)[-1].removesuffix(".json")
        return httpx.Response(200, json={resource: payloads[resource]})

    def client_factory(target):
        if target.domain == other_tenant.domain:
            raise RuntimeError("globex credentials revoked")
        return ShopifyClient(target.domain, target.access_token, transport=httpx.MockTransport(handler))

    syncer = TenantSyncService(session_factory=session_scope, client_factory=client_factory)
    scheduler = SyncScheduler(syncer, active_targets_provider(session_scope), timer=FakeTimer())

    report = await scheduler.run_sweep()

    assert report.succeeded == 1
    assert report.failed == 1
    by_domain = {r.domain: r for r in report.results}
    assert "revoked" in by_domain["globex.myshopify.com"].error

    acme = TenantRepository(test_db, tenant.id)
    assert await acme.count(EntityKind.PRODUCTS) == 1
    assert await acme.count(EntityKind.CUSTOMERS) == 1
    assert await acme.count(EntityKind.ORDERS) == 1
    assert len(await EventTracker(acme).list_events(EventKind.DATA_SYNC_COMPLETED)) == 1

    globex = TenantRepository(test_db, other_tenant.id)
    assert await globex.count(EntityKind.PRODUCTS) == 0
