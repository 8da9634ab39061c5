"""Tests for activity aggregate totals."""
from datetime import datetime, timedelta

from trailsync.analysis.stats import format_duration, summarize_activities
from trailsync.models.activity import ActivityRecord


def _record(kind, distance, duration, steps=0, elevation=None):
    start = datetime(2025, 1, 15, 7, 0)
    return ActivityRecord(
        kind=kind,
        start_time=start,
        end_time=start + timedelta(seconds=duration),
        duration_seconds=duration,
        distance_meters=distance,
        steps=steps,
        elevation_gain_meters=elevation,
    )


class TestFormatDuration:
    def test_hours_minutes_seconds(self):
        assert format_duration(3723) == "1h 2m 3s"

    def test_zero(self):
        assert format_duration(0) == "0h 0m 0s"

    def test_fractional_seconds_truncated(self):
        assert format_duration(59.9) == "0h 0m 59s"


class TestSummarizeActivities:
    def test_empty(self):
        stats = summarize_activities([])
        assert stats["total_activities"] == 0
        assert stats["total_distance_km"] == 0.0
        assert stats["total_duration_formatted"] == "0h 0m 0s"
        assert set(stats["by_kind"]) == {"walk", "run", "ride"}
        assert stats["by_kind"]["ride"]["count"] == 0

    def test_totals_and_breakdown(self):
        stats = summarize_activities([
            _record("run", 5000.0, 1800.0, elevation=40.0),
            _record("run", 10000.0, 3600.0, elevation=None),
            _record("walk", 2345.0, 1500.0, steps=3000, elevation=5.0),
        ])
        assert stats["total_activities"] == 3
        assert stats["total_distance_meters"] == 17345.0
        assert stats["total_distance_km"] == 17.34
        assert stats["total_duration_seconds"] == 6900.0
        assert stats["total_duration_formatted"] == "1h 55m 0s"
        assert stats["total_steps"] == 3000
        assert stats["total_elevation_meters"] == 45.0
        assert stats["by_kind"]["run"] == {
            "count": 2, "distance_meters": 15000.0, "duration_seconds": 5400.0,
        }
        assert stats["by_kind"]["walk"]["count"] == 1
        assert stats["by_kind"]["ride"]["count"] == 0
