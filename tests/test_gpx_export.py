"""GPX export and route import."""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from datetime import timedelta

import gpxpy
import pytest

from trail_tracker.errors import SerializationError
from trail_tracker.gpx import read_gpx_route, track_to_gpx, write_gpx
from trail_tracker.models import TrackRecord, TrackStats

NS = {"gpx": "http://www.topografix.com/GPX/1/1"}


def _record(t0, points, route_name="Dragon's Back"):
    return TrackRecord(
        id="rec-1",
        start_time=t0,
        end_time=t0 + timedelta(minutes=30),
        stats=TrackStats(sample_count=len(points)),
        points=points,
        route_name=route_name,
    )


@pytest.fixture
def three_points(sample_factory):
    return [
        sample_factory(22.2301234, 114.2401234, 0, elevation=120.5, speed=1.2),
        sample_factory(22.2309876, 114.2412345, 60, elevation=135.0),
        sample_factory(22.2318765, 114.2423456, 120.25, elevation=128.75, speed=1.4),
    ]


def test_round_trip_recovers_points(t0, three_points):
    text = track_to_gpx(_record(t0, three_points))
    gpx = gpxpy.parse(text)
    assert gpx.creator == "trail_tracker"
    assert len(gpx.tracks) == 1
    assert gpx.tracks[0].name == "Dragon's Back"
    parsed = gpx.tracks[0].segments[0].points
    assert len(parsed) == 3
    for original, point in zip(three_points, parsed):
        assert point.latitude == original.coordinate.latitude
        assert point.longitude == original.coordinate.longitude
        assert point.elevation == pytest.approx(original.coordinate.elevation)
        assert point.time == original.timestamp


def test_document_structure(t0, three_points):
    text = track_to_gpx(_record(t0, three_points))
    assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    root = ET.fromstring(text.encode("utf-8"))
    assert root.tag == "{http://www.topografix.com/GPX/1/1}gpx"
    assert root.get("version") == "1.1"
    assert root.find("gpx:metadata/gpx:time", NS).text == "2024-03-01T08:00:00Z"
    trkpts = root.findall("gpx:trk/gpx:trkseg/gpx:trkpt", NS)
    assert [p.find("gpx:time", NS).text for p in trkpts] == [
        "2024-03-01T08:00:00Z",
        "2024-03-01T08:01:00Z",
        "2024-03-01T08:02:00.250Z",
    ]
    speeds = [p.find("gpx:extensions/gpx:speed", NS) for p in trkpts]
    assert speeds[0].text == "1.2"
    assert speeds[1] is None


def test_zero_point_record_is_well_formed(t0):
    text = track_to_gpx(_record(t0, [], route_name=None))
    root = ET.fromstring(text.encode("utf-8"))
    segment = root.find("gpx:trk/gpx:trkseg", NS)
    assert segment is not None
    assert list(segment) == []
    assert root.find("gpx:trk/gpx:name", NS).text == "Untitled Route"
    assert gpxpy.parse(text).get_track_points_no() == 0


def test_elevation_omitted_when_unknown(t0, sample_factory):
    text = track_to_gpx(_record(t0, [sample_factory(22.3, 114.1, 0)]))
    root = ET.fromstring(text.encode("utf-8"))
    trkpt = root.find("gpx:trk/gpx:trkseg/gpx:trkpt", NS)
    assert trkpt.find("gpx:ele", NS) is None


def test_names_are_escaped(t0):
    text = track_to_gpx(_record(t0, [], route_name='Lion Rock & "Beacon" <Hill>'))
    root = ET.fromstring(text.encode("utf-8"))
    assert root.find("gpx:trk/gpx:name", NS).text == 'Lion Rock & "Beacon" <Hill>'


def test_export_is_deterministic(t0, three_points):
    record = _record(t0, three_points)
    assert track_to_gpx(record) == track_to_gpx(record)


def test_non_finite_value_raises(t0, sample_factory):
    sample = sample_factory(22.3, 114.1, 0, elevation=10.0)
    object.__setattr__(sample.coordinate, "elevation", math.nan)
    with pytest.raises(SerializationError):
        track_to_gpx(_record(t0, [sample]))


def test_write_gpx_creates_parent_dirs(tmp_path, t0, three_points):
    target = tmp_path / "exports" / "walk.gpx"
    written = write_gpx(_record(t0, three_points), target)
    assert written == target
    assert target.read_text(encoding="utf-8") == track_to_gpx(_record(t0, three_points))


def test_read_gpx_route_prefers_route_points():
    text = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <rte>
    <name>MacLehose Stage 2</name>
    <rtept lat="22.3700" lon="114.3700"><ele>10</ele></rtept>
    <rtept lat="22.3800" lon="114.3800"/>
  </rte>
  <trk><trkseg><trkpt lat="1.0" lon="1.0"/></trkseg></trk>
</gpx>
"""
    route = read_gpx_route(text, route_id="mac-2")
    assert route.name == "MacLehose Stage 2"
    assert route.route_id == "mac-2"
    assert [w.latlon for w in route.waypoints] == [(22.37, 114.37), (22.38, 114.38)]
    assert route.waypoints[0].elevation == 10.0


def test_read_gpx_route_falls_back_to_track(t0, three_points):
    route = read_gpx_route(track_to_gpx(_record(t0, three_points)))
    assert route.name == "Dragon's Back"
    assert len(route.waypoints) == 3


def test_read_gpx_route_rejects_garbage():
    with pytest.raises(ValueError):
        read_gpx_route("this is not xml")
