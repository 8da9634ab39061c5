"""
Mapping between local ActivityRecord fields and the remote wire shape.

The authoritative store speaks camelCase JSON with a Mongo-style ``_id``:

    {
        "_id": "65a1...", "type": "run", "name": "Run - 2025-01-15",
        "startTime": "2025-01-15T07:30:00.000Z", "endTime": "...",
        "duration": 1800, "distance": 3000, "steps": 0,
        "avgPace": 10.0, "avgSpeed": 6.0, "elevationGain": 12,
        "route": [{"lat": .., "lng": .., "timestamp": "..", "altitude": .., "accuracy": ..}],
        "notes": "...", "tags": ["..."], "lastModified": "...",
        "syncStatus": "synced", "userId": "default-user", "__v": 0
    }

Only content fields cross the boundary. Local bookkeeping (local id,
sync_status, deleted) never reaches the server, and server-side extras
(userId, syncStatus, __v, createdAt) never reach the local store.

No DB access here; callers (the sync orchestrator) handle persistence.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from trailsync.models.activity import ActivityKind

logger = logging.getLogger(__name__)

# local field name -> remote field name
_FIELD_MAP = {
    "kind": "type",
    "name": "name",
    "start_time": "startTime",
    "end_time": "endTime",
    "duration_seconds": "duration",
    "distance_meters": "distance",
    "route": "route",
    "steps": "steps",
    "avg_pace_min_per_km": "avgPace",
    "avg_speed_kmh": "avgSpeed",
    "elevation_gain_meters": "elevationGain",
    "notes": "notes",
    "tags": "tags",
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 string (``Z`` suffix allowed) to naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def format_timestamp(value: Any) -> Any:
    """Render a naive-UTC datetime as ISO 8601 with a ``Z`` suffix."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat(timespec="milliseconds") + "Z"
    return value


class RoutePoint(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    timestamp: datetime
    altitude: Optional[float] = None
    accuracy: Optional[float] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def naive_utc(cls, v):
        return parse_timestamp(v)


class RemoteActivity(BaseModel):
    """An activity as the authoritative store reports it."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    remote_id: str = Field(alias="_id")
    kind: ActivityKind = Field(alias="type")
    name: Optional[str] = None
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    duration_seconds: float = Field(alias="duration")
    distance_meters: float = Field(default=0.0, alias="distance")
    route: List[RoutePoint] = Field(default_factory=list)
    steps: int = 0
    avg_pace_min_per_km: Optional[float] = Field(default=None, alias="avgPace")
    avg_speed_kmh: Optional[float] = Field(default=None, alias="avgSpeed")
    elevation_gain_meters: Optional[float] = Field(default=None, alias="elevationGain")
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    last_modified: datetime = Field(alias="lastModified")

    @field_validator("start_time", "end_time", "last_modified", mode="before")
    @classmethod
    def naive_utc(cls, v):
        return parse_timestamp(v)

    def to_local_fields(self) -> Dict[str, Any]:
        """Content fields for ActivityRecord (route timestamps as ISO strings)."""
        return {
            "kind": self.kind.value,
            "name": self.name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_seconds": self.duration_seconds,
            "distance_meters": self.distance_meters,
            "route": [
                {**p.model_dump(), "timestamp": p.timestamp.isoformat()}
                for p in self.route
            ],
            "steps": self.steps,
            "avg_pace_min_per_km": self.avg_pace_min_per_km,
            "avg_speed_kmh": self.avg_speed_kmh,
            "elevation_gain_meters": self.elevation_gain_meters,
            "notes": self.notes,
            "tags": list(self.tags),
        }


def normalize_remote_activity(raw: Dict[str, Any]) -> RemoteActivity:
    """Validate one remote JSON object. Raises pydantic.ValidationError."""
    return RemoteActivity.model_validate(raw)


class RemoteActivityList(list):
    """Validated remote records plus the number of malformed ones left out."""

    def __init__(self, records=(), skipped: int = 0):
        super().__init__(records)
        self.skipped = skipped


def normalize_remote_activities(raws: List[Any]) -> RemoteActivityList:
    """Validate a listing record by record, logging and skipping malformed ones."""
    records = RemoteActivityList()
    for raw in raws:
        try:
            records.append(normalize_remote_activity(raw))
        except ValidationError as exc:
            records.skipped += 1
            logger.warning(
                "Skipping invalid remote activity %s: %s",
                raw.get("_id") if isinstance(raw, dict) else raw,
                exc,
            )
    return records


def to_remote_payload(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert local content fields (full record or partial patch) to a remote body.

    Accepts datetimes or ISO strings (queue snapshots are JSON). Keys that are
    not content fields are dropped, so sync bookkeeping never leaks out.
    """
    payload: Dict[str, Any] = {}
    for local_key, remote_key in _FIELD_MAP.items():
        if local_key not in fields:
            continue
        value = fields[local_key]
        if local_key in ("start_time", "end_time"):
            value = format_timestamp(parse_timestamp(value))
        elif local_key == "kind" and isinstance(value, ActivityKind):
            value = value.value
        elif local_key == "route" and value is not None:
            value = [
                {**point, "timestamp": format_timestamp(parse_timestamp(point.get("timestamp")))}
                for point in value
            ]
        payload[remote_key] = value
    return payload
