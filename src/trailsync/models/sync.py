"""Sync bookkeeping models: mutation queue, persisted settings, audit log."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from trailsync.models.activity import utcnow


class MutationOp(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationQueueEntry(SQLModel, table=True):
    """One outstanding intent to change the authoritative store."""

    id: Optional[int] = Field(default=None, primary_key=True)
    operation: str  # MutationOp value
    activity_id: int = Field(index=True)  # local ActivityRecord.id, no FK: outlives deletes
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    enqueued_at: datetime = Field(default_factory=utcnow, index=True)
    retry_count: int = 0
    last_attempt_at: Optional[datetime] = None


class SyncSetting(SQLModel, table=True):
    """Persisted key/value settings (last sync time, auto-sync toggle)."""

    key: str = Field(primary_key=True)
    value: Optional[str] = None


class SyncLog(SQLModel, table=True):
    """Records each sync cycle for audit and debugging."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(default=1)
    kind: str = "sync"  # "sync", "force"
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "error"
    pushed_success: int = 0
    pushed_failed: int = 0
    pulled_added: int = 0
    pulled_updated: int = 0
    pulled_conflicts: int = 0
    error_message: Optional[str] = None
