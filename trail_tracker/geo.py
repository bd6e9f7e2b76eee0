"""Great-circle and point-to-route distance helpers.

``distance`` is a plain haversine on a sphere. Distances to a planned route are
measured in a local transverse Mercator plane centred on the route and built on
the same sphere. Projected routes are cached per waypoint sequence.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from threading import RLock
from typing import Iterable, List, Sequence, Tuple

import numpy as np
from cachetools import LRUCache
from numpy.typing import NDArray
from pyproj import CRS, Transformer
from shapely.geometry import LineString, Point

from .config import EARTH_RADIUS_M, ROUTE_CACHE_SIZE
from .models import Coordinate

MetricArray = NDArray[np.float64]
LatLon = Tuple[float, float]
_RouteKey = Tuple[LatLon, ...]

_SPHERE_LONGLAT = f"+proj=longlat +R={EARTH_RADIUS_M} +no_defs"


@dataclass(slots=True)
class PreparedRoute:
    """Metric representation of a route, reusable across evaluations."""

    latlon_points: List[LatLon]
    metric_points: MetricArray
    line: LineString
    transformer: Transformer

    @property
    def length_m(self) -> float:
        return float(self.line.length)


_route_cache: LRUCache[_RouteKey, PreparedRoute] = LRUCache(
    maxsize=max(1, ROUTE_CACHE_SIZE)
)
_route_cache_lock = RLock()


def distance(a: Coordinate, b: Coordinate) -> float:
    """Return the haversine distance in metres, ignoring elevation."""

    lat1_rad = math.radians(a.latitude)
    lat2_rad = math.radians(b.latitude)
    delta_lat = lat2_rad - lat1_rad
    delta_lon = math.radians(b.longitude - a.longitude)
    sin_half_lat = math.sin(delta_lat / 2.0)
    sin_half_lon = math.sin(delta_lon / 2.0)
    h = sin_half_lat**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * sin_half_lon**2
    # Clamp rounding noise near antipodes.
    h = min(max(h, 0.0), 1.0)
    c = 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))
    return EARTH_RADIUS_M * c


def distance_3d(a: Coordinate, b: Coordinate) -> float:
    """Return ``distance`` combined with the elevation delta when both are known."""

    horizontal = distance(a, b)
    if a.elevation is None or b.elevation is None:
        return horizontal
    return math.hypot(horizontal, b.elevation - a.elevation)


def path_length(coords: Iterable[Coordinate]) -> float:
    """Return the summed haversine length of a coordinate sequence."""

    points = list(coords)
    if len(points) < 2:
        return 0.0
    lats = np.radians(np.asarray([pt.latitude for pt in points], dtype=float))
    lons = np.radians(np.asarray([pt.longitude for pt in points], dtype=float))
    sin_half_lat = np.sin(np.diff(lats) / 2.0)
    sin_half_lon = np.sin(np.diff(lons) / 2.0)
    h = sin_half_lat**2 + np.cos(lats[:-1]) * np.cos(lats[1:]) * sin_half_lon**2
    h = np.clip(h, 0.0, 1.0)
    c = 2.0 * np.arctan2(np.sqrt(h), np.sqrt(1.0 - h))
    return float(np.sum(EARTH_RADIUS_M * c))


def distance_to_polyline(point: Coordinate, polyline: Sequence[Coordinate]) -> float:
    """Return the minimum distance in metres from ``point`` to a polyline.

    An empty polyline yields ``math.inf``; callers decide what that means. A
    single waypoint degrades to the point-to-point distance.
    """

    waypoints = list(polyline)
    if not waypoints:
        return math.inf
    if len(waypoints) == 1:
        return distance(point, waypoints[0])
    prepared = get_prepared_route(waypoints)
    if prepared.length_m == 0:
        return distance(point, waypoints[0])
    x, y = prepared.transformer.transform(point.longitude, point.latitude)
    return float(prepared.line.distance(Point(x, y)))


def get_prepared_route(waypoints: Sequence[Coordinate]) -> PreparedRoute:
    """Return the cached metric projection for ``waypoints``."""

    key: _RouteKey = tuple(pt.latlon for pt in waypoints)
    with _route_cache_lock:
        cached = _route_cache.get(key)
    if cached is not None:
        return cached
    prepared = prepare_route(waypoints)
    with _route_cache_lock:
        _route_cache[key] = prepared
    return prepared


def prepare_route(waypoints: Sequence[Coordinate]) -> PreparedRoute:
    """Project route waypoints into a local metric plane."""

    if len(waypoints) < 2:
        raise ValueError("A route needs at least two waypoints to be projected")
    latlon = [pt.latlon for pt in waypoints]
    transformer = _build_local_transformer(latlon)
    metric = _project_points(latlon, transformer)
    return PreparedRoute(
        latlon_points=latlon,
        metric_points=metric,
        line=LineString(metric),
        transformer=transformer,
    )


def clear_route_cache() -> None:
    with _route_cache_lock:
        _route_cache.clear()


def _build_local_transformer(points: Sequence[LatLon]) -> Transformer:
    """Build a transverse Mercator transformer centred on the provided coordinates."""

    mean_lat = float(np.mean([pt[0] for pt in points]))
    mean_lon = float(np.mean([pt[1] for pt in points]))
    local_crs = CRS.from_proj4(
        f"+proj=tmerc +lat_0={mean_lat} +lon_0={mean_lon} +k=1 +x_0=0 +y_0=0 "
        f"+R={EARTH_RADIUS_M} +units=m +no_defs"
    )
    return Transformer.from_crs(
        CRS.from_proj4(_SPHERE_LONGLAT), local_crs, always_xy=True
    )


def _project_points(points: Sequence[LatLon], transformer: Transformer) -> MetricArray:
    """Project lat/lon pairs through an existing transformer."""

    if not points:
        return np.empty((0, 2), dtype=float)
    lats = np.asarray([pt[0] for pt in points], dtype=float)
    lons = np.asarray([pt[1] for pt in points], dtype=float)
    xs, ys = transformer.transform(lons, lats)
    return np.column_stack((xs, ys)).astype(float, copy=False)


__all__ = [
    "PreparedRoute",
    "clear_route_cache",
    "distance",
    "distance_3d",
    "distance_to_polyline",
    "get_prepared_route",
    "path_length",
    "prepare_route",
]
