"""
SyncOrchestrator: reconciles the local record store with the authoritative store.

Flow for one sync() cycle:
  1. Busy guard: if a cycle already holds the session lock, return "busy"
  2. Connectivity check: offline -> return "offline"
  3. Health check: remote unreachable -> return "unreachable" (nothing touched)
  4. Push phase: drain the mutation queue in FIFO order
  5. Pull phase: fetch remote changes since the last sync and reconcile
  6. Persist the last sync timestamp and finish the SyncLog row

sync() never raises; every outcome is a SyncResult. force_sync() is the one
operation that raises (OfflineError, SyncBusyError, or the remote failure).

Conflict policy is authoritative-wins: a remote record newer than a pending
local edit overwrites it and the conflict is counted, never merged.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from sqlmodel import Session, select

from trailsync.config import get_settings
from trailsync.models.activity import CONTENT_FIELDS, ActivityRecord, SyncStatus, utcnow
from trailsync.models.sync import MutationOp, MutationQueueEntry, SyncLog
from trailsync.remote.normalizer import RemoteActivity
from trailsync.store.records import LocalRecordStore
from trailsync.store.settings import SettingsStore
from trailsync.sync.connectivity import Connectivity
from trailsync.sync.errors import (
    EntryFailure,
    MissingRecordError,
    OfflineError,
    OrderingError,
    RemoteNotFoundError,
    SyncBusyError,
)

logger = logging.getLogger(__name__)


@dataclass
class PushResults:
    success: int = 0
    failed: int = 0
    dropped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    # Local ids that received their remote id in this push phase
    created: Set[int] = field(default_factory=set)


@dataclass
class PullResults:
    added: int = 0
    updated: int = 0
    conflicts: int = 0
    removed: int = 0


@dataclass
class SyncResult:
    success: bool
    message: str
    status: str  # "ok", "busy", "offline", "unreachable", "error"
    push: PushResults = field(default_factory=PushResults)
    pull: PullResults = field(default_factory=PullResults)

    @property
    def pushed_success(self) -> int:
        return self.push.success

    @property
    def pushed_failed(self) -> int:
        return self.push.failed

    @property
    def pulled_added(self) -> int:
        return self.pull.added

    @property
    def pulled_updated(self) -> int:
        return self.pull.updated

    @property
    def pulled_conflicts(self) -> int:
        return self.pull.conflicts


class SyncOrchestrator:
    """Drives push/pull cycles between LocalRecordStore and a remote client."""

    def __init__(
        self,
        store: LocalRecordStore,
        remote,
        settings_store: SettingsStore,
        connectivity: Optional[Connectivity] = None,
        *,
        max_retries: Optional[int] = None,
        force_sync_limit: Optional[int] = None,
        detect_remote_deletions: Optional[bool] = None,
    ):
        """
        Args:
            store: Local record store (its .queue is the mutation queue).
            remote: RemoteClient instance (or AsyncMock in tests).
            settings_store: Persisted settings (last sync timestamp).
            connectivity: Online/offline flag. Defaults to always online.
            max_retries: Failures after which a queue entry is dropped.
            force_sync_limit: Page size for force_sync() and full pulls.
            detect_remote_deletions: Remove synced local records missing
                from a complete remote listing.
        """
        settings = get_settings()
        self.store = store
        self.queue = store.queue
        self.remote = remote
        self.settings_store = settings_store
        self.connectivity = connectivity or Connectivity()
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.force_sync_limit = (
            force_sync_limit if force_sync_limit is not None else settings.force_sync_limit
        )
        self.detect_remote_deletions = (
            detect_remote_deletions
            if detect_remote_deletions is not None
            else settings.detect_remote_deletions
        )
        self._session_lock = asyncio.Lock()
        self._auto_sync = None

    @property
    def is_syncing(self) -> bool:
        return self._session_lock.locked()

    # ─── Public operations ────────────────────────────────────────────────────

    async def sync(self) -> SyncResult:
        """Run one push/pull cycle. Never raises."""
        if self._session_lock.locked():
            logger.info("Sync already in progress")
            return SyncResult(False, "Sync already in progress", status="busy")

        async with self._session_lock:
            if not self.connectivity.is_online():
                logger.info("Cannot sync - offline")
                return SyncResult(False, "Device is offline", status="offline")

            try:
                await self.remote.health_check()
            except Exception as exc:
                logger.info("Sync aborted, backend unreachable: %s", exc)
                return SyncResult(False, "Backend is not reachable", status="unreachable")

            return await self._run_cycle()

    async def force_sync(self) -> int:
        """
        Replace all local state with the authoritative store's records.

        Destructive: queued mutations and never-synced records are lost.

        Returns:
            Number of records downloaded.

        Raises:
            OfflineError: if connectivity is unavailable.
            SyncBusyError: if another cycle is running.
            Any exception from the remote client (local state left intact).
        """
        if not self.connectivity.is_online():
            raise OfflineError("Cannot force sync while offline")
        if self._session_lock.locked():
            raise SyncBusyError("Sync already in progress")

        async with self._session_lock:
            logger.info("Starting force sync...")
            log = self._create_sync_log(kind="force")
            try:
                started = utcnow()
                remote_records = await self.remote.list_activities(limit=self.force_sync_limit)
                discarded = self.queue.clear()
                count = self.store.replace_all(
                    [self._record_from_remote(r) for r in remote_records]
                )
                self.settings_store.set_last_sync(started)
            except Exception as exc:
                logger.error("Force sync failed: %s", exc)
                self._finish_sync_log(log, status="error", error_message=str(exc))
                raise

            self._finish_sync_log(log, status="success", pull=PullResults(added=count))
            logger.info(
                "Force sync completed: %d record(s) downloaded, %d queued mutation(s) discarded",
                count,
                discarded,
            )
            return count

    def start_auto_sync(self, interval_minutes: int = 5) -> None:
        """Sync now, then every ``interval_minutes``. Replaces any running timer."""
        from trailsync.scheduler.jobs import AutoSyncScheduler

        if self._auto_sync is None:
            self._auto_sync = AutoSyncScheduler(self, settings_store=self.settings_store)
        self._auto_sync.start(interval_minutes)

    def stop_auto_sync(self) -> None:
        """Cancel periodic sync and persist the toggle as off."""
        if self._auto_sync is not None:
            self._auto_sync.stop()
        else:
            self.settings_store.set_auto_sync_enabled(False)

    def shutdown(self) -> None:
        """Shut down the auto-sync scheduler, if one was started."""
        if self._auto_sync is not None:
            self._auto_sync.shutdown()
            self._auto_sync = None

    # ─── Cycle ────────────────────────────────────────────────────────────────

    async def _run_cycle(self) -> SyncResult:
        log = self._create_sync_log(kind="sync")
        push = PushResults()
        pull = PullResults()
        try:
            logger.info("Starting sync...")
            push = await self._push_phase()
            pull_started = utcnow()
            pull = await self._pull_phase(fresh_ids=push.created)
            self.settings_store.set_last_sync(pull_started)
        except Exception as exc:
            logger.exception("Sync error")
            self._finish_sync_log(log, status="error", push=push, pull=pull, error_message=str(exc))
            return SyncResult(False, str(exc), status="error", push=push, pull=pull)

        self._finish_sync_log(log, status="success", push=push, pull=pull)
        logger.info(
            "Sync completed: pushed %d ok / %d failed, pulled %d new / %d updated / %d conflicts",
            push.success,
            push.failed,
            pull.added,
            pull.updated,
            pull.conflicts,
        )
        return SyncResult(True, "Sync completed", status="ok", push=push, pull=pull)

    # ─── Push phase ───────────────────────────────────────────────────────────

    async def _push_phase(self) -> PushResults:
        results = PushResults()
        # Records with a failed entry this cycle; their later entries wait so
        # per-record order holds (an update never overtakes a failed create).
        blocked: Set[int] = set()

        for entry in self.queue.list_pending():
            if entry.activity_id in blocked:
                continue
            try:
                created = await self._apply_entry(entry)
            except Exception as exc:
                blocked.add(entry.activity_id)
                results.failed += 1
                results.errors.append({"entry_id": entry.id, "error": str(exc)})
                if self._handle_entry_failure(entry, exc):
                    results.dropped += 1
                continue

            self.queue.remove(entry.id)
            results.success += 1
            if created:
                results.created.add(entry.activity_id)

        return results

    async def _apply_entry(self, entry: MutationQueueEntry) -> bool:
        """Push one entry. Returns True if it created a remote record."""
        if entry.operation == MutationOp.CREATE:
            return await self._push_create(entry)
        elif entry.operation == MutationOp.UPDATE:
            await self._push_update(entry)
        elif entry.operation == MutationOp.DELETE:
            await self._push_delete(entry)
        else:
            raise MissingRecordError(f"unknown operation {entry.operation!r}")
        return False

    async def _push_create(self, entry: MutationQueueEntry) -> bool:
        record = self.store.get_by_id(entry.activity_id)
        if record is None:
            raise MissingRecordError(f"activity {entry.activity_id} not found locally")
        if record.deleted:
            logger.debug("Skipping create for deleted activity %d", record.id)
            return False
        if record.remote_id:
            # A previous attempt landed but the entry survived; never create twice.
            return False

        created = await self.remote.create_activity(_content(record))
        self._settle(entry, created)
        return True

    async def _push_update(self, entry: MutationQueueEntry) -> None:
        record = self.store.get_by_id(entry.activity_id)
        if record is None:
            raise MissingRecordError(f"activity {entry.activity_id} not found locally")
        if record.deleted:
            logger.debug("Skipping update for deleted activity %d", record.id)
            return
        if not record.remote_id:
            raise OrderingError(
                f"cannot update activity {record.id} without a remote id"
            )

        updated = await self.remote.update_activity(record.remote_id, entry.data or {})
        self._settle(entry, updated)

    async def _push_delete(self, entry: MutationQueueEntry) -> None:
        record = self.store.get_by_id(entry.activity_id)
        if record is not None and record.remote_id:
            try:
                await self.remote.delete_activity(record.remote_id)
            except RemoteNotFoundError:
                logger.info("Remote activity %s already gone", record.remote_id)
        if record is not None and record.deleted:
            self.store.delete(record.id)

    def _settle(self, entry: MutationQueueEntry, remote_record: RemoteActivity) -> None:
        """Store the remote identity; mark synced unless more local edits are queued."""
        if self.queue.has_pending_for(entry.activity_id, excluding_entry_id=entry.id):
            self.store.update(entry.activity_id, {"remote_id": remote_record.remote_id})
        else:
            self.store.mark_synced(
                entry.activity_id, remote_record.remote_id, remote_record.last_modified
            )

    def _handle_entry_failure(self, entry: MutationQueueEntry, exc: Exception) -> bool:
        """Count a failed attempt. Returns True if the entry was dropped."""
        if isinstance(exc, EntryFailure) and not exc.retryable:
            logger.warning(
                "Dropping %s entry %d for activity %d: %s",
                entry.operation,
                entry.id,
                entry.activity_id,
                exc,
            )
            self.queue.remove(entry.id)
            return True

        retries = self.queue.increment_retry(entry.id)
        if retries >= self.max_retries:
            logger.warning(
                "Removing %s entry %d after %d failed retries: %s",
                entry.operation,
                entry.id,
                retries,
                exc,
            )
            self.queue.remove(entry.id)
            return True

        logger.warning(
            "Sync error for %s entry %d (attempt %d/%d): %s",
            entry.operation,
            entry.id,
            retries,
            self.max_retries,
            exc,
        )
        return False

    # ─── Pull phase ───────────────────────────────────────────────────────────

    async def _pull_phase(self, fresh_ids: Set[int] = frozenset()) -> PullResults:
        """
        Reconcile remote changes since the last sync into the local store.

        Args:
            fresh_ids: Local ids created remotely by this cycle's push phase.
                A newer remote copy of one of these is our own write, not a
                conflict.
        """
        results = PullResults()
        last_sync = self.settings_store.get_last_sync()
        full_listing = last_sync is None
        remote_records = await self.remote.list_activities(
            modified_since=last_sync,
            limit=self.force_sync_limit if full_listing else None,
        )

        for remote_record in remote_records:
            self._reconcile(remote_record, results, fresh_ids)

        if self.detect_remote_deletions:
            if not full_listing:
                # The incremental page only holds changed records; the diff
                # needs the whole remote set.
                remote_records = await self.remote.list_activities(limit=self.force_sync_limit)
            if remote_records.skipped:
                logger.info(
                    "Skipping remote deletion check: %d remote record(s) failed validation",
                    remote_records.skipped,
                )
            elif len(remote_records) >= self.force_sync_limit:
                logger.info(
                    "Skipping remote deletion check: listing hit the %d record limit",
                    self.force_sync_limit,
                )
            else:
                results.removed = self._remove_missing({r.remote_id for r in remote_records})
        return results

    def _reconcile(
        self,
        remote_record: RemoteActivity,
        results: PullResults,
        fresh_ids: Set[int] = frozenset(),
    ) -> None:
        local = self.store.get_by_remote_id(remote_record.remote_id)
        if local is None:
            self.store.insert(self._record_from_remote(remote_record))
            results.added += 1
            return

        if local.deleted:
            # Local delete still queued; the push phase owns this record.
            return

        if remote_record.last_modified <= local.last_modified:
            return

        own_write = local.id in fresh_ids
        if local.sync_status == SyncStatus.PENDING:
            if own_write:
                # Created this cycle from the current local content, so the
                # remote copy already carries every queued edit.
                logger.debug("Activity %d created this cycle; adopting remote copy", local.id)
            else:
                logger.warning(
                    "Conflict detected for activity %s; authoritative copy wins",
                    remote_record.remote_id,
                )
                results.conflicts += 1
            discarded = self.queue.remove_for(local.id, MutationOp.UPDATE.value)
            if discarded:
                logger.info(
                    "Discarded %d superseded update(s) for activity %d", discarded, local.id
                )

        patch = remote_record.to_local_fields()
        patch["sync_status"] = SyncStatus.SYNCED.value
        patch["last_modified"] = remote_record.last_modified
        self.store.update(local.id, patch)
        if not own_write:
            results.updated += 1

    def _remove_missing(self, remote_ids: Set[str]) -> int:
        removed = 0
        for local in self.store.get_all(sync_status=SyncStatus.SYNCED.value):
            if local.remote_id and local.remote_id not in remote_ids:
                logger.info("Activity %s removed remotely; deleting local copy", local.remote_id)
                self.store.delete(local.id)
                removed += 1
        return removed

    @staticmethod
    def _record_from_remote(remote_record: RemoteActivity) -> ActivityRecord:
        return ActivityRecord(
            **remote_record.to_local_fields(),
            remote_id=remote_record.remote_id,
            sync_status=SyncStatus.SYNCED.value,
            last_modified=remote_record.last_modified,
        )

    # ─── Sync log ─────────────────────────────────────────────────────────────

    def _create_sync_log(self, kind: str) -> SyncLog:
        log = SyncLog(kind=kind, started_at=utcnow(), status="running")
        with Session(self.store.engine) as s:
            s.add(log)
            s.commit()
            s.refresh(log)
        return log

    def _finish_sync_log(
        self,
        log: SyncLog,
        *,
        status: str,
        push: Optional[PushResults] = None,
        pull: Optional[PullResults] = None,
        error_message: Optional[str] = None,
    ) -> None:
        push = push or PushResults()
        pull = pull or PullResults()
        with Session(self.store.engine) as s:
            db_log = s.get(SyncLog, log.id)
            db_log.status = status
            db_log.finished_at = utcnow()
            db_log.pushed_success = push.success
            db_log.pushed_failed = push.failed
            db_log.pulled_added = pull.added
            db_log.pulled_updated = pull.updated
            db_log.pulled_conflicts = pull.conflicts
            db_log.error_message = error_message
            s.add(db_log)
            s.commit()


def _content(record: ActivityRecord) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in CONTENT_FIELDS}


def last_sync_log(engine) -> Optional[SyncLog]:
    """Most recent SyncLog row, or None if no cycle has run."""
    with Session(engine) as s:
        return s.exec(
            select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
        ).first()


def build_orchestrator(engine, remote=None, connectivity: Optional[Connectivity] = None) -> SyncOrchestrator:
    """Wire an orchestrator over ``engine`` with an HTTP RemoteClient by default."""
    if remote is None:
        from trailsync.remote.client import RemoteClient

        remote = RemoteClient()
    return SyncOrchestrator(
        store=LocalRecordStore(engine),
        remote=remote,
        settings_store=SettingsStore(engine),
        connectivity=connectivity,
    )
