"""
Local record store for activities.

Two layers live here:

  Store primitives (get_by_id, get_all, insert, update, delete, mark_synced)
    Raw reads and writes with no queue side effects. The sync orchestrator
    uses these to apply authoritative state.

  User-facing API (record_activity, edit_activity, remove_activity)
    Every call writes the record and its MutationQueueEntry in a single
    session commit, marks the record ``pending`` and bumps ``last_modified``.

Deletes from the user-facing API leave a tombstone (``deleted=True``) so the
push phase can still read the record's remote id; tombstones are hidden from
get_all() and purged once the remote delete is confirmed.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from trailsync.analysis.stats import summarize_activities
from trailsync.models.activity import (
    CONTENT_FIELDS,
    ActivityKind,
    ActivityRecord,
    SyncStatus,
    compute_stats,
    utcnow,
)
from trailsync.models.sync import MutationOp, MutationQueueEntry
from trailsync.store.queue import MutationQueue

logger = logging.getLogger(__name__)

_STATS_INPUTS = {"distance_meters", "duration_seconds", "route"}


class RecordNotFoundError(LookupError):
    """Raised by the user-facing API when a local record does not exist."""


def snapshot_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy of a field dict for the queue's data column."""
    out: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif isinstance(value, ActivityKind):
            out[key] = value.value
        else:
            out[key] = value
    return out


def _default_name(kind: str, start_time: datetime) -> str:
    return f"{kind.capitalize()} - {start_time.strftime('%Y-%m-%d')}"


class LocalRecordStore:
    """SQLite-backed activity store plus its mutation queue."""

    def __init__(self, engine, queue: Optional[MutationQueue] = None):
        self.engine = engine
        self.queue = queue or MutationQueue(engine)

    # ─── Store primitives ─────────────────────────────────────────────────────

    def get_by_id(self, local_id: int) -> Optional[ActivityRecord]:
        """Fetch a record by local id, tombstones included."""
        with Session(self.engine) as s:
            return s.get(ActivityRecord, local_id)

    def get_by_remote_id(self, remote_id: str) -> Optional[ActivityRecord]:
        with Session(self.engine) as s:
            return s.exec(
                select(ActivityRecord).where(ActivityRecord.remote_id == remote_id)
            ).first()

    def get_all(
        self,
        *,
        kind: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sync_status: Optional[str] = None,
        include_deleted: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ActivityRecord]:
        """List records, newest start time first."""
        query = select(ActivityRecord)
        if not include_deleted:
            query = query.where(ActivityRecord.deleted == False)  # noqa: E712
        if kind is not None:
            query = query.where(ActivityRecord.kind == kind)
        if start_date is not None:
            query = query.where(ActivityRecord.start_time >= start_date)
        if end_date is not None:
            query = query.where(ActivityRecord.start_time <= end_date)
        if sync_status is not None:
            query = query.where(ActivityRecord.sync_status == sync_status)
        query = query.order_by(ActivityRecord.start_time.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        with Session(self.engine) as s:
            return list(s.exec(query).all())

    def get_stats(
        self,
        *,
        kind: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Totals over live records matching the filters (see summarize_activities)."""
        return summarize_activities(
            self.get_all(kind=kind, start_date=start_date, end_date=end_date)
        )

    def insert(self, record: ActivityRecord) -> int:
        """Persist a record as-is and return its local id. No queue entry."""
        with Session(self.engine) as s:
            s.add(record)
            s.commit()
            s.refresh(record)
            return record.id

    def update(self, local_id: int, patch: Dict[str, Any]) -> None:
        """Apply ``patch`` to the stored record. Missing records are ignored."""
        with Session(self.engine) as s:
            record = s.get(ActivityRecord, local_id)
            if record is None:
                return
            for key, value in patch.items():
                setattr(record, key, value)
            s.add(record)
            s.commit()

    def delete(self, local_id: int) -> None:
        """Physically remove a record. No queue entry."""
        with Session(self.engine) as s:
            record = s.get(ActivityRecord, local_id)
            if record is not None:
                s.delete(record)
                s.commit()

    def mark_synced(
        self,
        local_id: int,
        remote_id: str,
        last_modified: Optional[datetime] = None,
    ) -> None:
        """Attach the remote identity and mark the record ``synced``.

        ``last_modified`` adopts the authoritative timestamp so the next pull
        does not treat our own write as a newer remote change.
        """
        if not remote_id:
            raise ValueError("a synced record needs a remote id")
        patch: Dict[str, Any] = {
            "remote_id": remote_id,
            "sync_status": SyncStatus.SYNCED.value,
        }
        if last_modified is not None:
            patch["last_modified"] = last_modified
        self.update(local_id, patch)

    def clear(self) -> int:
        """Remove every record, tombstones included. Returns the number removed."""
        with Session(self.engine) as s:
            records = s.exec(select(ActivityRecord)).all()
            for record in records:
                s.delete(record)
            s.commit()
        return len(records)

    def replace_all(self, records: List[ActivityRecord]) -> int:
        """Swap the whole store for ``records`` in one commit. No queue entries."""
        with Session(self.engine) as s:
            for existing in s.exec(select(ActivityRecord)).all():
                s.delete(existing)
            s.flush()
            for record in records:
                s.add(record)
            s.commit()
        return len(records)

    # ─── User-facing API ──────────────────────────────────────────────────────

    def record_activity(self, fields: Dict[str, Any]) -> ActivityRecord:
        """Store a finished activity and queue its create.

        Args:
            fields: Content fields (see CONTENT_FIELDS). ``kind``,
                ``start_time``, ``end_time`` are required; ``duration_seconds``
                is derived from the timestamps when absent.

        Raises:
            ValueError: on an unknown kind or unknown field names.
        """
        data = self._clean(fields)
        for required in ("kind", "start_time", "end_time"):
            if data.get(required) is None:
                raise ValueError(f"missing required field: {required}")
        if data.get("duration_seconds") is None:
            data["duration_seconds"] = (data["end_time"] - data["start_time"]).total_seconds()
        if not data.get("name"):
            data["name"] = _default_name(data["kind"], data["start_time"])
        data = compute_stats(data)

        with Session(self.engine) as s:
            record = ActivityRecord(
                **data,
                sync_status=SyncStatus.PENDING.value,
                last_modified=utcnow(),
            )
            s.add(record)
            s.flush()
            self.queue.enqueue(
                MutationQueueEntry(
                    operation=MutationOp.CREATE.value,
                    activity_id=record.id,
                    data=snapshot_fields(data),
                ),
                session=s,
            )
            s.commit()
            s.refresh(record)
        logger.info("Recorded %s activity %d (pending sync)", record.kind, record.id)
        return record

    def edit_activity(self, local_id: int, patch: Dict[str, Any]) -> ActivityRecord:
        """Apply a user edit and queue its update.

        Raises:
            RecordNotFoundError: if the record is missing or deleted.
            ValueError: on an unknown kind or unknown field names.
        """
        changes = self._clean(patch)
        with Session(self.engine) as s:
            record = s.get(ActivityRecord, local_id)
            if record is None or record.deleted:
                raise RecordNotFoundError(f"activity {local_id} not found")

            if _STATS_INPUTS & changes.keys():
                merged = {f: getattr(record, f) for f in CONTENT_FIELDS}
                merged.update(changes)
                derived = compute_stats(merged)
                for key in ("avg_pace_min_per_km", "avg_speed_kmh", "elevation_gain_meters"):
                    if derived.get(key) != merged.get(key):
                        changes[key] = derived.get(key)

            for key, value in changes.items():
                setattr(record, key, value)
            record.sync_status = SyncStatus.PENDING.value
            record.last_modified = utcnow()
            s.add(record)
            self.queue.enqueue(
                MutationQueueEntry(
                    operation=MutationOp.UPDATE.value,
                    activity_id=local_id,
                    data=snapshot_fields(changes),
                ),
                session=s,
            )
            s.commit()
            s.refresh(record)
        return record

    def remove_activity(self, local_id: int) -> None:
        """Tombstone the record and queue its delete.

        Raises:
            RecordNotFoundError: if the record is missing or already deleted.
        """
        with Session(self.engine) as s:
            record = s.get(ActivityRecord, local_id)
            if record is None or record.deleted:
                raise RecordNotFoundError(f"activity {local_id} not found")
            record.deleted = True
            record.sync_status = SyncStatus.PENDING.value
            record.last_modified = utcnow()
            s.add(record)
            self.queue.enqueue(
                MutationQueueEntry(
                    operation=MutationOp.DELETE.value,
                    activity_id=local_id,
                ),
                session=s,
            )
            s.commit()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - set(CONTENT_FIELDS)
        if unknown:
            raise ValueError(f"unknown activity fields: {sorted(unknown)}")
        data = dict(fields)
        if "kind" in data:
            data["kind"] = ActivityKind(data["kind"]).value
        if data.get("route"):
            data["route"] = [snapshot_fields(dict(point)) for point in data["route"]]
        return data
