"""Persistence for finalized track records.

The engine only needs a narrow contract from storage: ``save`` must be durable
before it returns (or raise), records are retrievable by id, and listings come
back newest first. Two stores satisfy it: an in-memory one for tests and
embedding, and a directory of JSON documents written atomically.

``record_to_payload`` / ``record_from_payload`` are the explicit serialisation
step; points are stored as a plain ordered list, never as an opaque blob.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

from cachetools import LRUCache

from .config import TRACK_STORE_CACHE_SIZE, TRACK_STORE_DIR
from .errors import PersistenceError
from .models import Coordinate, Sample, TrackRecord, TrackStats
from .utils import parse_iso_datetime, to_utc_aware

_LOGGER = logging.getLogger(__name__)

PAYLOAD_VERSION = 1


class TrackStore(Protocol):
    """Storage collaborator used by the session controller."""

    def save(self, record: TrackRecord) -> None: ...

    def load(self, record_id: str) -> Optional[TrackRecord]: ...

    def delete(self, record_id: str) -> bool: ...

    def list_records(self) -> List[TrackRecord]: ...


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------
def record_to_payload(record: TrackRecord) -> Dict[str, Any]:
    """Return a JSON-friendly dict for ``record``."""

    stats = record.stats
    return {
        "version": PAYLOAD_VERSION,
        "id": record.id,
        "route_id": record.route_id,
        "route_name": record.route_name,
        "start_time": _iso(record.start_time),
        "end_time": _iso(record.end_time),
        "stats": {
            "total_distance_m": stats.total_distance_m,
            "max_speed_kmh": stats.max_speed_kmh,
            "average_speed_kmh": stats.average_speed_kmh,
            "max_elevation_m": stats.max_elevation_m,
            "min_elevation_m": stats.min_elevation_m,
            "total_elevation_gain_m": stats.total_elevation_gain_m,
            "sample_count": stats.sample_count,
            "start_time": _iso_or_none(stats.start_time),
            "last_sample_time": _iso_or_none(stats.last_sample_time),
            "elapsed_seconds": stats.elapsed_seconds,
        },
        "points": [_sample_to_payload(sample) for sample in record.points],
    }


def record_from_payload(payload: Mapping[str, Any]) -> TrackRecord:
    """Rebuild a ``TrackRecord`` from ``record_to_payload`` output.

    Raises:
        ValueError: The payload is missing fields or holds invalid values.
    """

    try:
        raw_stats = payload.get("stats") or {}
        stats = TrackStats(
            total_distance_m=float(raw_stats.get("total_distance_m", 0.0)),
            max_speed_kmh=float(raw_stats.get("max_speed_kmh", 0.0)),
            average_speed_kmh=float(raw_stats.get("average_speed_kmh", 0.0)),
            max_elevation_m=_float_or_none(raw_stats.get("max_elevation_m")),
            min_elevation_m=_float_or_none(raw_stats.get("min_elevation_m")),
            total_elevation_gain_m=float(raw_stats.get("total_elevation_gain_m", 0.0)),
            sample_count=int(raw_stats.get("sample_count", 0)),
            start_time=parse_iso_datetime(raw_stats.get("start_time")),
            last_sample_time=parse_iso_datetime(raw_stats.get("last_sample_time")),
            elapsed_seconds=float(raw_stats.get("elapsed_seconds", 0.0)),
        )
        start_time = _require_time(payload.get("start_time"), "start_time")
        end_time = _require_time(payload.get("end_time"), "end_time")
        points = tuple(_sample_from_payload(item) for item in payload.get("points", []))
        return TrackRecord(
            id=str(payload["id"]),
            start_time=start_time,
            end_time=end_time,
            stats=stats,
            points=points,
            route_id=payload.get("route_id"),
            route_name=payload.get("route_name"),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed track record payload: {exc}") from exc


def _sample_to_payload(sample: Sample) -> Dict[str, Any]:
    coord = sample.coordinate
    return {
        "lat": coord.latitude,
        "lon": coord.longitude,
        "ele": coord.elevation,
        "time": _iso(sample.timestamp),
        "speed": sample.speed,
        "accuracy": sample.horizontal_accuracy,
    }


def _sample_from_payload(item: Mapping[str, Any]) -> Sample:
    return Sample(
        coordinate=Coordinate(
            float(item["lat"]), float(item["lon"]), _float_or_none(item.get("ele"))
        ),
        timestamp=_require_time(item.get("time"), "time"),
        speed=_float_or_none(item.get("speed")),
        horizontal_accuracy=_float_or_none(item.get("accuracy")),
    )


def _iso(value: datetime) -> str:
    return to_utc_aware(value).isoformat()


def _iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return _iso(value) if value is not None else None


def _float_or_none(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _require_time(raw: Any, field_name: str) -> datetime:
    parsed = parse_iso_datetime(raw) if isinstance(raw, str) else None
    if parsed is None:
        raise ValueError(f"Invalid or missing timestamp field '{field_name}'")
    return parsed


def _newest_first(records: List[TrackRecord]) -> List[TrackRecord]:
    return sorted(records, key=lambda r: (r.start_time, r.id), reverse=True)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------
class InMemoryTrackStore:
    """Thread-safe dictionary-backed store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, TrackRecord] = {}

    def save(self, record: TrackRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def load(self, record_id: str) -> Optional[TrackRecord]:
        with self._lock:
            return self._records.get(record_id)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None

    def list_records(self) -> List[TrackRecord]:
        with self._lock:
            records = list(self._records.values())
        return _newest_first(records)


class JsonTrackStore:
    """One JSON document per record inside ``base_dir``.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves a half-written record behind. Decoded records are kept in a small
    LRU cache.
    """

    def __init__(
        self,
        base_dir: str | Path = TRACK_STORE_DIR,
        *,
        cache_size: int = TRACK_STORE_CACHE_SIZE,
    ) -> None:
        base = Path(base_dir)
        self._base_dir = base if base.is_absolute() else Path.cwd() / base
        self._lock = threading.RLock()
        self._cache: LRUCache[str, TrackRecord] = LRUCache(maxsize=max(1, cache_size))
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(
                f"Cannot create track store directory {self._base_dir}: {exc}"
            ) from exc
        _LOGGER.info("Track store initialised dir=%s", self._base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _file_path(self, record_id: str) -> Path:
        safe = "".join(ch for ch in record_id if ch.isalnum() or ch in "-_")
        if not safe:
            raise PersistenceError(f"Invalid record id {record_id!r}", record_id)
        return self._base_dir / f"{safe}.json"

    def save(self, record: TrackRecord) -> None:
        path = self._file_path(record.id)
        payload = record_to_payload(record)
        temp_path = path.with_suffix(".tmp")
        with self._lock:
            try:
                with temp_path.open("w", encoding="utf-8") as handle:
                    json.dump(payload, handle, ensure_ascii=True, indent=2)
                    handle.flush()
                    os.fsync(handle.fileno())
                temp_path.replace(path)
            except (OSError, TypeError, ValueError) as exc:
                raise PersistenceError(
                    f"Failed to save track record {record.id}: {exc}", record.id
                ) from exc
            self._cache[record.id] = record
        _LOGGER.debug("Saved track record id=%s path=%s", record.id, path)

    def load(self, record_id: str) -> Optional[TrackRecord]:
        with self._lock:
            cached = self._cache.get(record_id)
            if cached is not None:
                return cached
            record = self._read(self._file_path(record_id), record_id)
            if record is not None:
                self._cache[record_id] = record
            return record

    def delete(self, record_id: str) -> bool:
        path = self._file_path(record_id)
        with self._lock:
            self._cache.pop(record_id, None)
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise PersistenceError(
                    f"Failed to delete track record {record_id}: {exc}", record_id
                ) from exc
        _LOGGER.info("Deleted track record id=%s", record_id)
        return True

    def list_records(self) -> List[TrackRecord]:
        records: List[TrackRecord] = []
        with self._lock:
            for path in sorted(self._base_dir.glob("*.json")):
                record_id = path.stem
                cached = self._cache.get(record_id)
                record = cached if cached is not None else self._read(path, record_id)
                if record is not None:
                    records.append(record)
        return _newest_first(records)

    def _read(self, path: Path, record_id: str) -> Optional[TrackRecord]:
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise PersistenceError(
                f"Failed to read track record {record_id} from {path}: {exc}",
                record_id,
            ) from exc
        try:
            return record_from_payload(payload)
        except ValueError as exc:
            raise PersistenceError(
                f"Corrupt track record {record_id} in {path}: {exc}", record_id
            ) from exc


__all__ = [
    "InMemoryTrackStore",
    "JsonTrackStore",
    "TrackStore",
    "record_from_payload",
    "record_to_payload",
]
