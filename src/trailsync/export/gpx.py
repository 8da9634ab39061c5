"""GPX 1.1 export of a recorded route."""
import gpxpy.gpx

from trailsync.models.activity import ActivityRecord
from trailsync.remote.normalizer import parse_timestamp

GPX_MEDIA_TYPE = "application/gpx+xml"


def activity_to_gpx(record: ActivityRecord) -> str:
    """
    Build a single-track, single-segment GPX document from ``record.route``.

    Altitude becomes <ele> when present. Point timestamps are written as UTC.
    A record without a route yields a track with an empty segment.
    """
    gpx = gpxpy.gpx.GPX()
    gpx.creator = "TrailSync"
    gpx.name = record.name
    gpx.time = record.start_time

    track = gpxpy.gpx.GPXTrack(name=record.name)
    track.type = record.kind
    segment = gpxpy.gpx.GPXTrackSegment()
    for point in record.route or []:
        segment.points.append(
            gpxpy.gpx.GPXTrackPoint(
                latitude=point["lat"],
                longitude=point["lng"],
                elevation=point.get("altitude"),
                time=parse_timestamp(point.get("timestamp")),
            )
        )
    track.segments.append(segment)
    gpx.tracks.append(track)
    return gpx.to_xml(version="1.1")


def gpx_filename(record: ActivityRecord) -> str:
    return f"activity-{record.remote_id or record.id}.gpx"
