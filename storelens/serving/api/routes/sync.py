"""
Sync Scheduler Endpoints

Operational control of the periodic Shopify sweep. Every route requires
the admin token.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from storelens.ingestion.scheduler import SyncScheduler
from storelens.serving.api.dependencies import require_admin

router = APIRouter(dependencies=[Depends(require_admin)])


def _scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler


@router.get("/status")
async def sync_status(request: Request) -> Dict[str, Any]:
    return _scheduler(request).status()


@router.post("/run")
async def run_sweep(request: Request) -> Dict[str, Any]:
    """Sweep all tenants now and wait for the result."""
    report = await _scheduler(request).run_sweep()
    if report is None:
        return {"status": "skipped", "reason": "sweep_in_progress"}
    return {"status": "completed", "sweep": report.to_dict()}


@router.post("/start")
async def start_scheduler(request: Request) -> Dict[str, Any]:
    scheduler = _scheduler(request)
    scheduler.start()
    return scheduler.status()


@router.post("/stop")
async def stop_scheduler(request: Request) -> Dict[str, Any]:
    scheduler = _scheduler(request)
    scheduler.stop()
    return scheduler.status()
