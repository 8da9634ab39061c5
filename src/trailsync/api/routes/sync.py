"""Sync trigger, force-resync and status routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from trailsync.api.deps import get_orchestrator
from trailsync.models.sync import MutationQueueEntry
from trailsync.sync.errors import OfflineError, SyncBusyError
from trailsync.sync.orchestrator import SyncOrchestrator, last_sync_log

router = APIRouter()


class SyncResultResponse(BaseModel):
    success: bool
    status: str
    message: str
    pushed_success: int
    pushed_failed: int
    pulled_added: int
    pulled_updated: int
    pulled_conflicts: int
    pulled_removed: int
    errors: List[dict] = Field(default_factory=list)


class SyncStatusResponse(BaseModel):
    status: str
    syncing: bool
    auto_sync_enabled: bool
    queue_length: int
    last_sync: Optional[datetime]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    error_message: Optional[str]


class AutoSyncRequest(BaseModel):
    enabled: bool
    interval_minutes: int = Field(default=5, gt=0)


@router.post("/trigger", response_model=SyncResultResponse)
async def trigger_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Run one sync cycle and report its result. Never errors; see ``success``."""
    result = await orchestrator.sync()
    return SyncResultResponse(
        success=result.success,
        status=result.status,
        message=result.message,
        pushed_success=result.pushed_success,
        pushed_failed=result.pushed_failed,
        pulled_added=result.pulled_added,
        pulled_updated=result.pulled_updated,
        pulled_conflicts=result.pulled_conflicts,
        pulled_removed=result.pull.removed,
        errors=result.push.errors,
    )


@router.post("/force")
async def force_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Discard local state and re-download everything from the backend."""
    try:
        count = await orchestrator.force_sync()
    except OfflineError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except SyncBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=502, detail=f"Force sync failed: {exc}")
    return {"message": "Force sync completed", "count": count}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Return the most recent sync cycle plus queue depth."""
    log = last_sync_log(orchestrator.store.engine)
    return SyncStatusResponse(
        status=log.status if log else "never_run",
        syncing=orchestrator.is_syncing,
        auto_sync_enabled=orchestrator.settings_store.get_auto_sync_enabled(),
        queue_length=orchestrator.queue.count(),
        last_sync=orchestrator.settings_store.get_last_sync(),
        started_at=log.started_at if log else None,
        finished_at=log.finished_at if log else None,
        error_message=log.error_message if log else None,
    )


@router.get("/queue", response_model=List[MutationQueueEntry])
def list_queue(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Pending mutations in the order they will be pushed."""
    return orchestrator.queue.list_pending()


@router.post("/auto")
async def set_auto_sync(
    body: AutoSyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Start (or re-arm) or stop periodic sync."""
    if body.enabled:
        orchestrator.start_auto_sync(body.interval_minutes)
    else:
        orchestrator.stop_auto_sync()
    return {"enabled": body.enabled, "interval_minutes": body.interval_minutes}
