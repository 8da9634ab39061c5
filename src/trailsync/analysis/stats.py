"""
Aggregate totals over local activity records.

Pure functions; callers pass records already filtered by kind and date
(see LocalRecordStore.get_stats).
"""
from typing import Any, Dict, Iterable

from trailsync.models.activity import ActivityKind, ActivityRecord


def format_duration(seconds: float) -> str:
    """Render a duration as "1h 2m 3s"."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"


def summarize_activities(records: Iterable[ActivityRecord]) -> Dict[str, Any]:
    """
    Totals across ``records`` plus per-kind count, distance and duration.

    Every kind appears in ``by_kind`` even with no records, so clients can
    render a fixed set of rows.
    """
    stats: Dict[str, Any] = {
        "total_activities": 0,
        "total_distance_meters": 0.0,
        "total_duration_seconds": 0.0,
        "total_steps": 0,
        "total_elevation_meters": 0.0,
        "by_kind": {
            kind.value: {"count": 0, "distance_meters": 0.0, "duration_seconds": 0.0}
            for kind in ActivityKind
        },
    }
    for record in records:
        distance = record.distance_meters or 0.0
        duration = record.duration_seconds or 0.0
        stats["total_activities"] += 1
        stats["total_distance_meters"] += distance
        stats["total_duration_seconds"] += duration
        stats["total_steps"] += record.steps or 0
        stats["total_elevation_meters"] += record.elevation_gain_meters or 0.0

        per_kind = stats["by_kind"].get(record.kind)
        if per_kind is not None:
            per_kind["count"] += 1
            per_kind["distance_meters"] += distance
            per_kind["duration_seconds"] += duration

    stats["total_distance_km"] = round(stats["total_distance_meters"] / 1000.0, 2)
    stats["total_duration_formatted"] = format_duration(stats["total_duration_seconds"])
    return stats
