"""
Periodic Sync Scheduler

Sweeps every active tenant through the sync pipeline on a fixed interval.

- One repeating timer at a time; ``start`` replaces an existing one
- ``stop`` cancels the timer but lets an in-flight sweep finish
- A tick that fires while a sweep is still running is skipped
- Tenants are synced concurrently and a failing tenant never affects the others

The timer and clock are injected so the scheduler can be driven
deterministically in tests.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Union

import structlog
from prometheus_client import Counter, Histogram
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.database import get_db
from storelens.database.models import utcnow
from storelens.ingestion.sync import SyncResult
from storelens.tenancy.resolver import SyncTarget, TenantResolver

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

SYNC_SWEEPS = Counter(
    "storelens_sync_sweeps_total",
    "Scheduler sweeps by outcome",
    ["status"],
)

SYNC_SWEEP_DURATION = Histogram(
    "storelens_sync_sweep_duration_seconds",
    "Time spent sweeping all tenants",
)

DEFAULT_INTERVAL = timedelta(minutes=15)

Syncer = Callable[[SyncTarget], Awaitable[SyncResult]]
TargetsProvider = Callable[[], Awaitable[List[SyncTarget]]]
Tick = Callable[[], Awaitable[Any]]


# =============================================================================
# TIMERS
# =============================================================================

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timer(Protocol):
    """Schedules the scheduler's tick"""

    def call_soon(self, callback: Tick) -> None: ...

    def call_every(self, interval_seconds: float, callback: Tick) -> TimerHandle: ...


class _RepeatingTask:
    def __init__(self, task: "asyncio.Task[None]"):
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()


class AsyncioTimer:
    """Timer backed by tasks on the running event loop"""

    def __init__(self):
        # Strong references so fire-and-forget tasks are not collected mid-run
        self._tasks: Set[asyncio.Task] = set()

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def call_soon(self, callback: Tick) -> None:
        self._spawn(callback())

    def call_every(self, interval_seconds: float, callback: Tick) -> TimerHandle:
        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                # Spawned, not awaited, so a cancelled timer leaves the running sweep alone
                self._spawn(callback())

        return _RepeatingTask(self._spawn(_loop()))


# =============================================================================
# SCHEDULER
# =============================================================================

@dataclass
class SweepReport:
    """Outcome of one sweep over all active tenants"""
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[SyncResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.succeeded)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "tenants": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
        }


def active_targets_provider(
    session_factory: Callable[[], AsyncContextManager[AsyncSession]] = get_db,
) -> TargetsProvider:
    """Targets provider reading active tenants through a fresh session"""

    async def _provider() -> List[SyncTarget]:
        async with session_factory() as session:
            return await TenantResolver(session).active_sync_targets()

    return _provider


class SyncScheduler:
    """
    Owns the periodic sweep.

    Example:
        scheduler = SyncScheduler(TenantSyncService(), active_targets_provider())
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        syncer: Syncer,
        targets_provider: TargetsProvider,
        interval: Union[timedelta, float] = DEFAULT_INTERVAL,
        timer: Optional[Timer] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not isinstance(interval, timedelta):
            interval = timedelta(minutes=interval)
        if interval.total_seconds() <= 0:
            raise ValueError("Sync interval must be positive")

        self._syncer = syncer
        self._targets_provider = targets_provider
        self._interval = interval
        self._timer = timer or AsyncioTimer()
        self._clock = clock

        self._handle: Optional[TimerHandle] = None
        self._sweeping = False
        self._last_report: Optional[SweepReport] = None

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    @property
    def last_report(self) -> Optional[SweepReport]:
        return self._last_report

    def start(self) -> None:
        """Sweep now and then on every interval, replacing any running timer"""
        if self._handle is not None:
            logger.info("Restarting sync scheduler")
            self._handle.cancel()
            self._handle = None

        self._handle = self._timer.call_every(self._interval.total_seconds(), self._tick)
        self._timer.call_soon(self._tick)
        logger.info("Sync scheduler started", interval_minutes=self._interval.total_seconds() / 60)

    def stop(self) -> None:
        """Cancel the timer; a sweep already running is left to finish"""
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.info("Sync scheduler stopped")

    def status(self) -> Dict[str, Any]:
        report = self._last_report
        return {
            "running": self.is_running,
            "interval_minutes": self._interval.total_seconds() / 60,
            "sweep_in_progress": self._sweeping,
            "last_sweep": report.to_dict() if report else None,
        }

    async def _tick(self) -> None:
        await self.run_sweep()

    async def run_sweep(self) -> Optional[SweepReport]:
        """
        Sync every active tenant once.

        Returns None when another sweep is already in progress.
        """
        if self._sweeping:
            SYNC_SWEEPS.labels(status="skipped").inc()
            logger.info("Sweep already in progress, skipping tick")
            return None

        self._sweeping = True
        report = SweepReport(started_at=self._clock())
        try:
            with SYNC_SWEEP_DURATION.time():
                try:
                    targets = await self._targets_provider()
                except Exception as e:
                    report.error = str(e)
                    SYNC_SWEEPS.labels(status="failed").inc()
                    logger.error("Could not load sync targets", error=str(e), error_type=type(e).__name__)
                    return report

                report.results = list(await asyncio.gather(*(self._sync_one(t) for t in targets)))
        finally:
            report.finished_at = self._clock()
            self._last_report = report
            self._sweeping = False

        SYNC_SWEEPS.labels(status="completed").inc()
        logger.info(
            "Sweep complete",
            tenants=len(report.results),
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report

    async def _sync_one(self, target: SyncTarget) -> SyncResult:
        try:
            return await self._syncer(target)
        except Exception as e:
            logger.error(
                "Tenant sync failed during sweep",
                tenant_id=str(target.tenant_id),
                domain=target.domain,
                error=str(e),
                error_type=type(e).__name__,
            )
            now = self._clock()
            return SyncResult(
                tenant_id=target.tenant_id,
                domain=target.domain,
                started_at=now,
                finished_at=now,
                error=str(e) or type(e).__name__,
            )
