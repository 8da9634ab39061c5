"""FastAPI dependencies for the record store and the shared orchestrator."""
from typing import Optional

from trailsync.db.engine import get_engine
from trailsync.store.records import LocalRecordStore
from trailsync.sync.orchestrator import SyncOrchestrator, build_orchestrator

_orchestrator: Optional[SyncOrchestrator] = None


def get_store() -> LocalRecordStore:
    return LocalRecordStore(get_engine())


def get_orchestrator() -> SyncOrchestrator:
    """Process-wide orchestrator; one session lock shared by every caller."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator(get_engine())
    return _orchestrator


async def close_orchestrator() -> None:
    """Stop auto-sync and close the remote client, if an orchestrator was built."""
    global _orchestrator
    if _orchestrator is None:
        return
    _orchestrator.shutdown()
    if hasattr(_orchestrator.remote, "aclose"):
        await _orchestrator.remote.aclose()
    _orchestrator = None
