"""Activity CRUD, stats and GPX export routes over the local record store.

Every write goes through LocalRecordStore so the record and its queue entry
are committed together; nothing here talks to the remote store.
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field, field_validator

from trailsync.api.deps import get_store
from trailsync.export.gpx import GPX_MEDIA_TYPE, activity_to_gpx, gpx_filename
from trailsync.models.activity import ActivityKind, ActivityRecord
from trailsync.remote.normalizer import RoutePoint, parse_timestamp
from trailsync.store.records import LocalRecordStore, RecordNotFoundError

router = APIRouter()


class ActivityCreate(BaseModel):
    kind: ActivityKind
    start_time: datetime
    end_time: datetime
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    distance_meters: float = Field(default=0.0, ge=0)
    name: Optional[str] = None
    route: List[RoutePoint] = Field(default_factory=list)
    steps: int = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: List[str] = Field(default_factory=list)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def naive_utc(cls, v):
        return parse_timestamp(v)


class KindTotals(BaseModel):
    count: int
    distance_meters: float
    duration_seconds: float


class ActivityStats(BaseModel):
    total_activities: int
    total_distance_meters: float
    total_duration_seconds: float
    total_steps: int
    total_elevation_meters: float
    total_distance_km: float
    total_duration_formatted: str
    by_kind: Dict[str, KindTotals]


class ActivityUpdate(BaseModel):
    kind: Optional[ActivityKind] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    distance_meters: Optional[float] = Field(default=None, ge=0)
    name: Optional[str] = None
    route: Optional[List[RoutePoint]] = None
    steps: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[str]] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def naive_utc(cls, v):
        return parse_timestamp(v)


@router.get("/", response_model=List[ActivityRecord])
def list_activities(
    limit: int = 20,
    offset: int = 0,
    kind: Optional[ActivityKind] = None,
    sync_status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    store: LocalRecordStore = Depends(get_store),
):
    """List local activities, newest first. Deleted ones are hidden."""
    return store.get_all(
        kind=kind.value if kind else None,
        start_date=parse_timestamp(start_date),
        end_date=parse_timestamp(end_date),
        sync_status=sync_status,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=ActivityStats)
def activity_stats(
    kind: Optional[ActivityKind] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    store: LocalRecordStore = Depends(get_store),
):
    """Totals and per-kind breakdown over local activities."""
    return store.get_stats(
        kind=kind.value if kind else None,
        start_date=parse_timestamp(start_date),
        end_date=parse_timestamp(end_date),
    )


@router.get("/{local_id}", response_model=ActivityRecord)
def get_activity(local_id: int, store: LocalRecordStore = Depends(get_store)):
    """Fetch a single activity by local id."""
    return _live_record(store, local_id)


@router.get("/{local_id}/export/gpx")
def export_gpx(local_id: int, store: LocalRecordStore = Depends(get_store)):
    """Download the activity's route as a GPX file."""
    record = _live_record(store, local_id)
    return Response(
        content=activity_to_gpx(record),
        media_type=GPX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{gpx_filename(record)}"'},
    )


@router.post("/", response_model=ActivityRecord, status_code=201)
def create_activity(body: ActivityCreate, store: LocalRecordStore = Depends(get_store)):
    """Record a finished activity locally; it is pushed on the next sync."""
    if body.end_time < body.start_time:
        raise HTTPException(status_code=400, detail="end_time is before start_time")
    try:
        return store.record_activity(body.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.put("/{local_id}", response_model=ActivityRecord)
def update_activity(
    local_id: int,
    body: ActivityUpdate,
    store: LocalRecordStore = Depends(get_store),
):
    """Apply a partial edit; only fields present in the body change."""
    patch = body.model_dump(exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        return store.edit_activity(local_id, patch)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Activity not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/{local_id}")
def delete_activity(local_id: int, store: LocalRecordStore = Depends(get_store)):
    """Delete locally; the remote delete is queued."""
    try:
        store.remove_activity(local_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Activity not found")
    return {"message": "Activity deleted", "id": local_id}


def _live_record(store: LocalRecordStore, local_id: int) -> ActivityRecord:
    record = store.get_by_id(local_id)
    if record is None or record.deleted:
        raise HTTPException(status_code=404, detail="Activity not found")
    return record
