"""
Main entrypoint: runs the auto-sync scheduler, or a single sync on demand.

FastAPI runs separately under uvicorn.

Usage:
    python -m trailsync               # auto-sync loop (every AUTO_SYNC_INTERVAL_MINUTES)
    python -m trailsync sync          # one sync cycle, prints the result
    python -m trailsync force-sync    # discard local state, re-download from backend
    uvicorn trailsync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _build():
    from trailsync.db.engine import get_engine
    from trailsync.sync.orchestrator import build_orchestrator

    return build_orchestrator(get_engine())


async def _run_once() -> int:
    orchestrator = _build()
    try:
        result = await orchestrator.sync()
    finally:
        await orchestrator.remote.aclose()
    logger.info(
        "%s (pushed %d, failed %d, added %d, updated %d, conflicts %d)",
        result.message,
        result.pushed_success,
        result.pushed_failed,
        result.pulled_added,
        result.pulled_updated,
        result.pulled_conflicts,
    )
    return 0 if result.success else 1


async def _run_force() -> int:
    from trailsync.sync.errors import OfflineError

    orchestrator = _build()
    try:
        count = await orchestrator.force_sync()
    except OfflineError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await orchestrator.remote.aclose()
    logger.info("Force sync downloaded %d activities", count)
    return 0


async def _run_auto_sync() -> None:
    from trailsync.config import get_settings

    settings = get_settings()
    orchestrator = _build()

    if not orchestrator.settings_store.get_auto_sync_enabled(default=settings.auto_sync_enabled):
        logger.error("Auto-sync is disabled. Enable it via the API or AUTO_SYNC_ENABLED.")
        await orchestrator.remote.aclose()
        sys.exit(1)

    orchestrator.start_auto_sync(settings.auto_sync_interval_minutes)
    logger.info("Auto-sync running. Press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        logger.info("Shutting down...")
    finally:
        orchestrator.shutdown()
        await orchestrator.remote.aclose()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `python -m trailsync sync|force-sync` or just `python -m trailsync`
    command = sys.argv[1] if len(sys.argv) > 1 else ""
    if command == "sync":
        sys.exit(asyncio.run(_run_once()))
    elif command == "force-sync":
        sys.exit(asyncio.run(_run_force()))
    elif command:
        print(__doc__)
        sys.exit(2)
    else:
        asyncio.run(_run_auto_sync())
