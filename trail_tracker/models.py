"""Dataclasses describing location samples, routes and finished tracks."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from polyline import decode as polyline_decode

from .config import DEVIATION_STALE_AFTER_SECONDS
from .utils import format_duration, to_utc_aware


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    FINALIZED = "finalized"


class PermissionState(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    GRANTED = "granted"


class RejectionReason(str, Enum):
    """Why the sample filter dropped a fix."""

    LOW_ACCURACY = "low_accuracy"
    NON_MONOTONIC_TIME = "non_monotonic_time"
    IMPLAUSIBLE_SPEED = "implausible_speed"


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 position in decimal degrees with an optional elevation in metres."""

    latitude: float
    longitude: float
    elevation: Optional[float] = None

    def __post_init__(self) -> None:
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValueError("Coordinate latitude/longitude must be finite")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")
        if self.elevation is not None and not math.isfinite(self.elevation):
            raise ValueError("Coordinate elevation must be finite when present")

    @property
    def latlon(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Sample:
    """A single timestamped location fix.

    Attributes:
        coordinate: Position of the fix.
        timestamp: UTC-aware instant of the fix (naive values are read as UTC).
        speed: Ground speed in metres/second, ``None`` when the sensor reports
            it as invalid.
        horizontal_accuracy: Radius of uncertainty in metres, if known.
    """

    coordinate: Coordinate
    timestamp: datetime
    speed: Optional[float] = None
    horizontal_accuracy: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", to_utc_aware(self.timestamp))
        if self.speed is not None and not (
            math.isfinite(self.speed) and self.speed >= 0
        ):
            raise ValueError(f"Sample speed must be >= 0 when present: {self.speed}")
        if self.horizontal_accuracy is not None and not math.isfinite(
            self.horizontal_accuracy
        ):
            raise ValueError("Sample accuracy must be finite when present")

    @classmethod
    def from_reading(
        cls,
        latitude: float,
        longitude: float,
        timestamp: datetime,
        *,
        elevation: Optional[float] = None,
        speed: Optional[float] = None,
        horizontal_accuracy: Optional[float] = None,
    ) -> "Sample":
        """Build a sample from raw sensor values.

        Location providers report invalid speed and accuracy as negative
        numbers (or NaN); those are mapped to ``None``.
        """

        return cls(
            coordinate=Coordinate(latitude, longitude, _valid_or_none(elevation)),
            timestamp=timestamp,
            speed=_non_negative_or_none(speed),
            horizontal_accuracy=_non_negative_or_none(horizontal_accuracy),
        )


@dataclass(slots=True)
class TrackStats:
    """Running aggregates for one session."""

    total_distance_m: float = 0.0
    max_speed_kmh: float = 0.0
    average_speed_kmh: float = 0.0
    max_elevation_m: Optional[float] = None
    min_elevation_m: Optional[float] = None
    total_elevation_gain_m: float = 0.0
    sample_count: int = 0
    start_time: Optional[datetime] = None
    last_sample_time: Optional[datetime] = None
    elapsed_seconds: float = 0.0

    def copy(self) -> "TrackStats":
        return replace(self)

    @property
    def total_distance_km(self) -> float:
        return self.total_distance_m / 1000.0


@dataclass(frozen=True, slots=True)
class PlannedRoute:
    """Ordered waypoints a hiker intends to follow."""

    waypoints: Tuple[Coordinate, ...] = ()
    route_id: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "waypoints", tuple(self.waypoints))

    @classmethod
    def from_endpoints(
        cls,
        start: Optional[Coordinate],
        end: Optional[Coordinate],
        *,
        route_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> "PlannedRoute":
        """Route known only by its start and/or end point."""

        waypoints = tuple(point for point in (start, end) if point is not None)
        return cls(waypoints=waypoints, route_id=route_id, name=name)

    @classmethod
    def from_polyline(
        cls,
        encoded: str,
        *,
        route_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> "PlannedRoute":
        """Decode a Google encoded polyline into a route."""

        if not encoded:
            return cls(route_id=route_id, name=name)
        try:
            decoded = polyline_decode(encoded)
        except (ValueError, TypeError, IndexError) as exc:
            raise ValueError("Unable to decode polyline") from exc
        waypoints = tuple(Coordinate(float(lat), float(lon)) for lat, lon in decoded)
        return cls(waypoints=waypoints, route_id=route_id, name=name)


@dataclass(frozen=True, slots=True)
class DeviationState:
    """Most recent distance-from-route reading."""

    distance_to_route_m: float
    is_off_route: bool
    evaluated_at: Optional[datetime] = None
    position_age_s: Optional[float] = None
    stale_after_s: float = DEVIATION_STALE_AFTER_SECONDS

    @property
    def is_stale(self) -> bool:
        return (
            self.position_age_s is not None and self.position_age_s > self.stale_after_s
        )


@dataclass(frozen=True, slots=True)
class TrackRecord:
    """Finalized, immutable result of one tracking session."""

    id: str
    start_time: datetime
    end_time: datetime
    stats: TrackStats
    points: Tuple[Sample, ...] = field(default_factory=tuple)
    route_id: Optional[str] = None
    route_name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", tuple(self.points))
        object.__setattr__(self, "stats", self.stats.copy())

    @property
    def duration_seconds(self) -> float:
        return max((self.end_time - self.start_time).total_seconds(), 0.0)

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration_seconds)

    @property
    def display_name(self) -> str:
        return self.route_name or "Untitled"


def _valid_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return float(value)


def _non_negative_or_none(value: Optional[float]) -> Optional[float]:
    value = _valid_or_none(value)
    if value is None or value < 0:
        return None
    return value


__all__ = [
    "Coordinate",
    "DeviationState",
    "PermissionState",
    "PlannedRoute",
    "RejectionReason",
    "Sample",
    "SessionState",
    "TrackRecord",
    "TrackStats",
]
