"""Shared test fixtures."""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from trailsync.models.activity import ActivityRecord, utcnow  # noqa: F401
from trailsync.models.sync import MutationQueueEntry, SyncLog, SyncSetting  # noqa: F401
from trailsync.remote.normalizer import (
    RemoteActivity,
    RemoteActivityList,
    format_timestamp,
    normalize_remote_activities,
    normalize_remote_activity,
    parse_timestamp,
    to_remote_payload,
)
from trailsync.store.queue import MutationQueue
from trailsync.store.records import LocalRecordStore
from trailsync.store.settings import SettingsStore
from trailsync.sync.connectivity import Connectivity
from trailsync.sync.errors import RemoteNotFoundError, UnreachableError
from trailsync.sync.orchestrator import SyncOrchestrator

RUN_FIELDS = {
    "kind": "run",
    "start_time": datetime(2025, 1, 15, 7, 30),
    "end_time": datetime(2025, 1, 15, 8, 0),
    "duration_seconds": 1800.0,
    "distance_meters": 3000.0,
}


class FakeRemote:
    """
    In-memory authoritative store speaking the same wire shape as the server.

    Records are kept as camelCase dicts and returned through the normalizer,
    so the mapping layer is exercised end to end. Every call yields to the
    event loop once, like a real network round trip.
    """

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.healthy = True
        self.failing: Dict[str, Exception] = {}  # operation -> exception to raise
        self._next_id = 1

    def seed(self, last_modified: Optional[datetime] = None, **overrides) -> str:
        """Put a record straight into the store (as if another device wrote it)."""
        remote_id = overrides.pop("_id", None) or self._new_id()
        raw = {
            "_id": remote_id,
            "type": "run",
            "name": "Seeded Run",
            "startTime": "2025-01-10T07:00:00.000Z",
            "endTime": "2025-01-10T07:45:00.000Z",
            "duration": 2700,
            "distance": 7500,
            "route": [],
            "tags": [],
            "lastModified": format_timestamp(last_modified or utcnow()),
            "userId": "default-user",
            "syncStatus": "synced",
            "__v": 0,
        }
        raw.update(overrides)
        self.records[remote_id] = raw
        return remote_id

    def _new_id(self) -> str:
        remote_id = f"srv{self._next_id:04d}"
        self._next_id += 1
        return remote_id

    async def _call(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        await asyncio.sleep(0)
        if operation in self.failing:
            raise self.failing[operation]

    async def health_check(self) -> Dict[str, Any]:
        await self._call("health")
        if not self.healthy:
            raise UnreachableError("Backend is not reachable")
        return {"status": "ok"}

    async def list_activities(
        self,
        modified_since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> RemoteActivityList:
        await self._call("list", modified_since, limit)
        rows = list(self.records.values())
        if modified_since is not None:
            rows = [r for r in rows if parse_timestamp(r["lastModified"]) >= modified_since]
        rows.sort(key=lambda r: r["startTime"], reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return normalize_remote_activities(rows)

    async def create_activity(self, fields: Dict[str, Any]) -> RemoteActivity:
        await self._call("create", fields)
        raw = to_remote_payload(fields)
        raw["_id"] = self._new_id()
        raw["lastModified"] = format_timestamp(utcnow())
        self.records[raw["_id"]] = raw
        return normalize_remote_activity(raw)

    async def update_activity(self, remote_id: str, patch: Dict[str, Any]) -> RemoteActivity:
        await self._call("update", remote_id, patch)
        if remote_id not in self.records:
            raise RemoteNotFoundError("not found", status_code=404)
        raw = self.records[remote_id]
        raw.update(to_remote_payload(patch))
        raw["lastModified"] = format_timestamp(utcnow())
        return normalize_remote_activity(raw)

    async def delete_activity(self, remote_id: str) -> None:
        await self._call("delete", remote_id)
        if remote_id not in self.records:
            raise RemoteNotFoundError("not found", status_code=404)
        del self.records[remote_id]

    def ops(self, operation: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == operation]


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="queue")
def queue_fixture(engine) -> MutationQueue:
    return MutationQueue(engine)


@pytest.fixture(name="store")
def store_fixture(engine, queue) -> LocalRecordStore:
    return LocalRecordStore(engine, queue=queue)


@pytest.fixture(name="settings_store")
def settings_store_fixture(engine) -> SettingsStore:
    return SettingsStore(engine)


@pytest.fixture(name="remote")
def remote_fixture() -> FakeRemote:
    return FakeRemote()


@pytest.fixture(name="connectivity")
def connectivity_fixture() -> Connectivity:
    return Connectivity(online=True)


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(store, remote, settings_store, connectivity) -> SyncOrchestrator:
    return SyncOrchestrator(
        store=store,
        remote=remote,
        settings_store=settings_store,
        connectivity=connectivity,
        max_retries=5,
        force_sync_limit=1000,
        detect_remote_deletions=False,
    )


@pytest.fixture(name="run_fields")
def run_fields_fixture() -> Dict[str, Any]:
    return dict(RUN_FIELDS)


@pytest.fixture(name="long_ago")
def long_ago_fixture() -> datetime:
    """A timestamp safely older than anything the tests write with utcnow()."""
    return utcnow() - timedelta(days=30)
