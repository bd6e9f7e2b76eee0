from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import polyline
import pytest

from trail_tracker.errors import (
    InvalidStateTransitionError,
    PermissionDeniedError,
    TrackerError,
)
from trail_tracker.models import (
    Coordinate,
    DeviationState,
    PermissionState,
    PlannedRoute,
    Sample,
    SessionState,
    TrackRecord,
    TrackStats,
)
from trail_tracker.utils import format_duration, format_iso_utc, parse_iso_datetime


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0:00"), (59.9, "0:59"), (61, "1:01"), (3599, "59:59"), (3600, "1:00:00"), (45296, "12:34:56"), (-5, "0:00")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_iso_helpers():
    moment = datetime(2024, 3, 1, 8, 0, 5, tzinfo=timezone.utc)
    assert format_iso_utc(moment) == "2024-03-01T08:00:05Z"
    assert format_iso_utc(moment + timedelta(microseconds=123456)) == "2024-03-01T08:00:05.123Z"
    hk = moment.astimezone(timezone(timedelta(hours=8)))
    assert format_iso_utc(hk) == "2024-03-01T08:00:05Z"
    assert parse_iso_datetime("2024-03-01T08:00:05Z") == moment
    assert parse_iso_datetime("not a date") is None
    assert parse_iso_datetime(None) is None


@pytest.mark.parametrize(
    "lat,lon",
    [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.5), (math.nan, 0.0), (0.0, math.inf)],
)
def test_coordinate_validation(lat, lon):
    with pytest.raises(ValueError):
        Coordinate(lat, lon)


def test_sample_from_reading_maps_invalid_sensor_values():
    ts = datetime(2024, 3, 1, 8, 0)
    sample = Sample.from_reading(
        22.3, 114.1, ts, elevation=math.nan, speed=-1.0, horizontal_accuracy=-1.0
    )
    assert sample.speed is None
    assert sample.horizontal_accuracy is None
    assert sample.coordinate.elevation is None
    # Naive timestamps are read as UTC.
    assert sample.timestamp == ts.replace(tzinfo=timezone.utc)


def test_sample_rejects_negative_speed():
    with pytest.raises(ValueError):
        Sample(Coordinate(0.0, 0.0), datetime(2024, 3, 1, tzinfo=timezone.utc), speed=-0.5)


def test_planned_route_from_endpoints():
    start = Coordinate(22.37, 114.37)
    assert PlannedRoute.from_endpoints(start, None).waypoints == (start,)
    assert PlannedRoute.from_endpoints(None, None).waypoints == ()
    end = Coordinate(22.38, 114.38)
    route = PlannedRoute.from_endpoints(start, end, route_id="x", name="Stage 1")
    assert route.waypoints == (start, end)
    assert route.name == "Stage 1"


def test_planned_route_from_polyline():
    encoded = polyline.encode([(22.37, 114.37), (22.38, 114.38)])
    route = PlannedRoute.from_polyline(encoded, name="Stage 2")
    assert [w.latlon for w in route.waypoints] == [(22.37, 114.37), (22.38, 114.38)]
    assert PlannedRoute.from_polyline("").waypoints == ()


def test_deviation_staleness():
    assert not DeviationState(10.0, False, position_age_s=5.0, stale_after_s=30.0).is_stale
    assert DeviationState(10.0, False, position_age_s=31.0, stale_after_s=30.0).is_stale
    assert not DeviationState(10.0, False).is_stale


def test_track_record_is_immutable_and_owns_stats(t0):
    stats = TrackStats(total_distance_m=1500.0)
    record = TrackRecord(
        id="r", start_time=t0, end_time=t0 + timedelta(minutes=75), stats=stats, points=[]
    )
    stats.total_distance_m = 0.0
    assert record.stats.total_distance_m == 1500.0
    assert record.stats.total_distance_km == pytest.approx(1.5)
    assert record.points == ()
    assert record.formatted_duration == "1:15:00"
    assert record.display_name == "Untitled"
    with pytest.raises(AttributeError):
        record.id = "other"


def test_error_messages():
    denied = PermissionDeniedError(PermissionState.NOT_DETERMINED)
    assert isinstance(denied, TrackerError)
    assert "not_determined" in str(denied)
    invalid = InvalidStateTransitionError("pause", SessionState.IDLE)
    assert str(invalid) == "Cannot pause() while session is idle"
