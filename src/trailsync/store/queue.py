"""Durable FIFO queue of pending create/update/delete intents."""
import logging
from typing import List, Optional

from sqlmodel import Session, select

from trailsync.models.activity import utcnow
from trailsync.models.sync import MutationQueueEntry

logger = logging.getLogger(__name__)


class MutationQueue:
    """SQLite-backed mutation queue.

    Entries are listed in enqueue order (ties broken by primary key, which is
    monotonic), so several entries for the same record keep their order.
    """

    def __init__(self, engine):
        self.engine = engine

    def enqueue(self, entry: MutationQueueEntry, session: Optional[Session] = None) -> None:
        """Add an entry.

        When ``session`` is given the entry joins that session's transaction
        and the caller commits, so a record write and its queue entry land
        together.
        """
        if session is not None:
            session.add(entry)
            return
        with Session(self.engine) as s:
            s.add(entry)
            s.commit()

    def list_pending(self) -> List[MutationQueueEntry]:
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(MutationQueueEntry).order_by(
                        MutationQueueEntry.enqueued_at, MutationQueueEntry.id
                    )
                ).all()
            )

    def get(self, entry_id: int) -> Optional[MutationQueueEntry]:
        with Session(self.engine) as s:
            return s.get(MutationQueueEntry, entry_id)

    def remove(self, entry_id: int) -> None:
        with Session(self.engine) as s:
            entry = s.get(MutationQueueEntry, entry_id)
            if entry is not None:
                s.delete(entry)
                s.commit()

    def increment_retry(self, entry_id: int) -> int:
        """Bump the retry counter and stamp the attempt time.

        Returns:
            The new retry count, or 0 if the entry no longer exists.
        """
        with Session(self.engine) as s:
            entry = s.get(MutationQueueEntry, entry_id)
            if entry is None:
                return 0
            entry.retry_count += 1
            entry.last_attempt_at = utcnow()
            s.add(entry)
            s.commit()
            return entry.retry_count

    def has_pending_for(self, activity_id: int, *, excluding_entry_id: int) -> bool:
        """True if any entry other than ``excluding_entry_id`` references the record."""
        with Session(self.engine) as s:
            later = s.exec(
                select(MutationQueueEntry).where(
                    MutationQueueEntry.activity_id == activity_id,
                    MutationQueueEntry.id != excluding_entry_id,
                )
            ).first()
            return later is not None

    def count(self) -> int:
        return len(self.list_pending())

    def clear(self) -> int:
        """Drop every entry. Returns the number removed."""
        with Session(self.engine) as s:
            entries = s.exec(select(MutationQueueEntry)).all()
            for entry in entries:
                s.delete(entry)
            s.commit()
        if entries:
            logger.warning("Discarded %d queued mutation(s)", len(entries))
        return len(entries)

    def remove_for(self, activity_id: int, operation: Optional[str] = None) -> int:
        """Drop entries for one record, optionally only one operation kind."""
        with Session(self.engine) as s:
            query = select(MutationQueueEntry).where(
                MutationQueueEntry.activity_id == activity_id
            )
            if operation is not None:
                query = query.where(MutationQueueEntry.operation == operation)
            entries = s.exec(query).all()
            for entry in entries:
                s.delete(entry)
            s.commit()
        return len(entries)
