"""Local activity record model: one row per tracked activity on this device."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC now. SQLite drops tzinfo, so every stored timestamp is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ActivityKind(str, Enum):
    WALK = "walk"
    RUN = "run"
    RIDE = "ride"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    CONFLICT = "conflict"


class ActivityRecord(SQLModel, table=True):
    """
    Local copy of an activity.

    ``id`` is assigned locally and never changes. ``remote_id`` is set once the
    authoritative store has accepted the record; a record is only ever
    ``synced`` while it carries one.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(default=1, index=True)
    remote_id: Optional[str] = Field(default=None, index=True)

    kind: str  # ActivityKind value
    name: Optional[str] = None
    start_time: datetime = Field(index=True)
    end_time: datetime
    duration_seconds: float
    distance_meters: float = 0.0

    # Route: list of {"lat", "lng", "timestamp", "altitude", "accuracy"} dicts
    route: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    # Derived metrics
    steps: int = 0
    avg_pace_min_per_km: Optional[float] = None
    avg_speed_kmh: Optional[float] = None
    elevation_gain_meters: Optional[float] = None

    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    sync_status: str = Field(default=SyncStatus.PENDING.value, index=True)  # SyncStatus value
    last_modified: datetime = Field(default_factory=utcnow)

    # Tombstone: deleted locally, delete not yet confirmed by the remote store
    deleted: bool = Field(default=False, index=True)


# Fields a user (or a pulled remote record) may write. Identity and sync
# bookkeeping are owned by the store and the orchestrator.
CONTENT_FIELDS = (
    "kind",
    "name",
    "start_time",
    "end_time",
    "duration_seconds",
    "distance_meters",
    "route",
    "steps",
    "avg_pace_min_per_km",
    "avg_speed_kmh",
    "elevation_gain_meters",
    "notes",
    "tags",
)


def compute_stats(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Fill average pace, speed and elevation gain from distance, duration and route.

    Returns a new dict; the input is left untouched. Pace is min/km, speed is
    km/h and elevation gain sums positive altitude deltas between consecutive
    route points that both carry an altitude.
    """
    out = dict(fields)
    distance = out.get("distance_meters") or 0.0
    duration = out.get("duration_seconds") or 0.0
    if distance > 0 and duration > 0:
        distance_km = distance / 1000.0
        out["avg_pace_min_per_km"] = (duration / 60.0) / distance_km
        out["avg_speed_kmh"] = distance_km / (duration / 3600.0)

    route = out.get("route") or []
    if len(route) > 1:
        gain = 0.0
        for prev, cur in zip(route, route[1:]):
            if prev.get("altitude") is None or cur.get("altitude") is None:
                continue
            diff = cur["altitude"] - prev["altitude"]
            if diff > 0:
                gain += diff
        out["elevation_gain_meters"] = float(round(gain))
    return out
