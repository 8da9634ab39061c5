"""
APScheduler job for periodic background sync.

The auto-sync job runs SyncOrchestrator.sync() once immediately and then
every N minutes. Manual triggers call the same sync() entry point, so a
manual sync during an automatic one just comes back "busy".

The scheduler runs inside the same event loop as the caller (wired in
__main__.py and the API lifespan).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "auto_sync"


def build_scheduler() -> AsyncIOScheduler:
    """Create an AsyncIOScheduler in UTC (not yet started)."""
    return AsyncIOScheduler(timezone=timezone.utc)


class AutoSyncScheduler:
    """Owns the repeating auto-sync job; cancellable by job id."""

    def __init__(self, orchestrator, settings_store=None, scheduler: Optional[AsyncIOScheduler] = None):
        """
        Args:
            orchestrator: SyncOrchestrator whose sync() the job invokes.
            settings_store: SettingsStore; when given, start/stop persist
                the auto-sync toggle.
            scheduler: Scheduler to register on. Defaults to build_scheduler().
        """
        self.orchestrator = orchestrator
        self.settings_store = settings_store
        self.scheduler = scheduler or build_scheduler()

    @property
    def active(self) -> bool:
        return self.scheduler.get_job(AUTO_SYNC_JOB_ID) is not None

    def start(self, interval_minutes: int) -> None:
        """
        Schedule sync() now and every ``interval_minutes`` after.

        Must be called with an event loop running. Calling again replaces the
        existing job, so there is never more than one timer.
        """
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")

        self.scheduler.add_job(
            _auto_sync_tick,
            trigger="interval",
            minutes=interval_minutes,
            id=AUTO_SYNC_JOB_ID,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            kwargs={"orchestrator": self.orchestrator},
        )
        if not self.scheduler.running:
            self.scheduler.start()
        if self.settings_store is not None:
            self.settings_store.set_auto_sync_enabled(True)
        logger.info("Auto-sync every %d minute(s)", interval_minutes)

    def stop(self) -> None:
        """Cancel the auto-sync job. The scheduler itself keeps running."""
        if self.active:
            self.scheduler.remove_job(AUTO_SYNC_JOB_ID)
            logger.info("Auto-sync stopped")
        if self.settings_store is not None:
            self.settings_store.set_auto_sync_enabled(False)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


async def _auto_sync_tick(orchestrator) -> None:
    """
    Periodic job body: one sync() cycle.

    Every tick is a fresh attempt; no backoff between failed ticks.
    """
    logger.info("Auto-sync tick at %s", datetime.now(timezone.utc).isoformat())
    try:
        result = await orchestrator.sync()
    except Exception as exc:
        # sync() should never raise; keep the scheduler alive if it does
        logger.error("Auto-sync failed: %s", exc)
        return
    if not result.success:
        logger.info("Auto-sync skipped: %s", result.message)
