from __future__ import annotations

import json
from datetime import timedelta

import pytest

from trail_tracker.errors import PersistenceError
from trail_tracker.models import TrackRecord, TrackStats
from trail_tracker.store import (
    InMemoryTrackStore,
    JsonTrackStore,
    record_from_payload,
    record_to_payload,
)


def _record(t0, record_id, offset_hours=0, points=(), name=None):
    start = t0 + timedelta(hours=offset_hours)
    return TrackRecord(
        id=record_id,
        start_time=start,
        end_time=start + timedelta(minutes=45),
        stats=TrackStats(
            total_distance_m=4321.5,
            max_speed_kmh=6.3,
            average_speed_kmh=5.76,
            max_elevation_m=431.0,
            min_elevation_m=12.5,
            total_elevation_gain_m=418.5,
            sample_count=len(points),
            start_time=start,
            last_sample_time=start + timedelta(minutes=44),
            elapsed_seconds=2700.0,
        ),
        points=points,
        route_id="r-1" if name else None,
        route_name=name,
    )


@pytest.fixture
def points(sample_factory):
    return (
        sample_factory(22.2701, 114.1501, 0.123456, elevation=12.5, speed=1.1, accuracy=4.0),
        sample_factory(22.2710, 114.1510, 30, elevation=None, speed=None, accuracy=None),
    )


def test_payload_round_trip_is_exact(t0, points):
    record = _record(t0, "abc-123", points=points, name="The Peak")
    payload = record_to_payload(record)
    assert isinstance(payload["points"], list)
    # Survives a JSON encode as well.
    restored = record_from_payload(json.loads(json.dumps(payload)))
    assert restored == record


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p.pop("id"),
        lambda p: p.update(start_time="yesterday"),
        lambda p: p["points"][0].pop("lat"),
        lambda p: p.update(points=[{"lat": 95.0, "lon": 0.0, "time": "2024-03-01T08:00:00+00:00"}]),
    ],
)
def test_malformed_payload_raises_value_error(t0, points, mutate):
    payload = record_to_payload(_record(t0, "abc", points=points))
    mutate(payload)
    with pytest.raises(ValueError):
        record_from_payload(payload)


def test_in_memory_store_crud_and_order(t0):
    store = InMemoryTrackStore()
    older = _record(t0, "older", 0)
    newer = _record(t0, "newer", 5)
    store.save(older)
    store.save(newer)
    assert [r.id for r in store.list_records()] == ["newer", "older"]
    assert store.load("older") is older
    assert store.delete("older") is True
    assert store.delete("older") is False
    assert store.load("older") is None


def test_json_store_persists_across_instances(tmp_path, t0, points):
    record = _record(t0, "walk-1", points=points, name="Lantau")
    JsonTrackStore(tmp_path).save(record)
    assert (tmp_path / "walk-1.json").is_file()
    assert not list(tmp_path.glob("*.tmp"))

    reopened = JsonTrackStore(tmp_path)
    assert reopened.load("walk-1") == record
    assert reopened.load("missing") is None


def test_json_store_lists_newest_first(tmp_path, t0):
    store = JsonTrackStore(tmp_path)
    for idx, rid in enumerate(["a", "b", "c"]):
        store.save(_record(t0, rid, offset_hours=[2, 0, 1][idx]))
    assert [r.id for r in JsonTrackStore(tmp_path).list_records()] == ["a", "c", "b"]


def test_json_store_delete(tmp_path, t0):
    store = JsonTrackStore(tmp_path)
    store.save(_record(t0, "gone"))
    assert store.delete("gone") is True
    assert store.load("gone") is None
    assert store.delete("gone") is False
    assert store.list_records() == []


def test_corrupt_file_raises_persistence_error(tmp_path):
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    store = JsonTrackStore(tmp_path)
    with pytest.raises(PersistenceError) as excinfo:
        store.load("broken")
    assert excinfo.value.record_id == "broken"


def test_invalid_record_id_rejected(tmp_path, t0):
    store = JsonTrackStore(tmp_path)
    with pytest.raises(PersistenceError):
        store.save(_record(t0, "../.."))


def test_save_failure_wrapped(tmp_path, t0, monkeypatch):
    store = JsonTrackStore(tmp_path)

    def boom(*args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr("trail_tracker.store.os.fsync", boom)
    with pytest.raises(PersistenceError) as excinfo:
        store.save(_record(t0, "ro"))
    assert "read-only" in str(excinfo.value)
    assert excinfo.value.__cause__ is not None
