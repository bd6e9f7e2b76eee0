"""GPX 1.1 export of finalized tracks (and import of planned routes).

``track_to_gpx`` is a pure function of the record: the same record always
renders to the same text, including a record with no points (an empty
``<trkseg>``).
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import List, Optional

import gpxpy
import gpxpy.gpx

from .config import GPX_CREATOR, GPX_DEFAULT_NAME
from .errors import SerializationError
from .models import Coordinate, PlannedRoute, Sample, TrackRecord
from .utils import format_iso_utc

LOGGER = logging.getLogger(__name__)

GPX_NAMESPACE = "http://www.topografix.com/GPX/1/1"


def track_to_gpx(
    record: TrackRecord,
    *,
    creator: str = GPX_CREATOR,
    default_name: str = GPX_DEFAULT_NAME,
) -> str:
    """Convert a track record to GPX track format.

    Args:
        record: Finalized track record.
        creator: Value of the ``creator`` attribute.
        default_name: Track name used when the record has no route name.

    Returns:
        GPX XML string.

    Raises:
        SerializationError: A point holds a non-finite value.
    """

    name = _escape_xml(record.route_name or default_name)
    gpx_lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<gpx version="1.1" creator="{_escape_xml(creator)}"',
        f'     xmlns="{GPX_NAMESPACE}"',
        '     xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"',
        f'     xsi:schemaLocation="{GPX_NAMESPACE} '
        'http://www.topografix.com/GPX/1/1/gpx.xsd">',
        "  <metadata>",
        f"    <name>{name}</name>",
        f"    <time>{format_iso_utc(record.start_time)}</time>",
        "  </metadata>",
        "  <trk>",
        f"    <name>{name}</name>",
        "    <trkseg>",
    ]

    for index, sample in enumerate(record.points):
        gpx_lines.extend(_trkpt_lines(sample, index))

    gpx_lines.extend(
        [
            "    </trkseg>",
            "  </trk>",
            "</gpx>",
        ]
    )
    return "\n".join(gpx_lines) + "\n"


def write_gpx(record: TrackRecord, path: str | Path) -> Path:
    """Write ``record`` as GPX to ``path`` and return the resolved path."""

    output_path = Path(path)
    content = track_to_gpx(record)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(content)
    LOGGER.info("GPX written to %s (%d points)", output_path, len(record.points))
    return output_path


def read_gpx_route(
    text: str,
    *,
    route_id: Optional[str] = None,
    name: Optional[str] = None,
) -> PlannedRoute:
    """Build a planned route from a GPX document.

    Route points (``rtept``) are preferred; track points (``trkpt``) are used
    when the document holds no route.

    Raises:
        ValueError: The document is not valid GPX.
    """

    try:
        gpx = gpxpy.parse(text)
    except gpxpy.gpx.GPXException as exc:
        raise ValueError(f"Unable to parse GPX: {exc}") from exc

    waypoints: List[Coordinate] = []
    route_name = name
    for route in gpx.routes:
        route_name = route_name or route.name
        waypoints.extend(
            Coordinate(pt.latitude, pt.longitude, pt.elevation) for pt in route.points
        )
    if not waypoints:
        for track in gpx.tracks:
            route_name = route_name or track.name
            for segment in track.segments:
                waypoints.extend(
                    Coordinate(pt.latitude, pt.longitude, pt.elevation)
                    for pt in segment.points
                )
    return PlannedRoute(
        waypoints=tuple(waypoints),
        route_id=route_id,
        name=route_name or gpx.name,
    )


def _trkpt_lines(sample: Sample, index: int) -> List[str]:
    coord = sample.coordinate
    lat = _format_float(coord.latitude, index, "lat")
    lon = _format_float(coord.longitude, index, "lon")
    lines = [f'      <trkpt lat="{lat}" lon="{lon}">']
    if coord.elevation is not None:
        lines.append(f"        <ele>{_format_float(coord.elevation, index, 'ele')}</ele>")
    lines.append(f"        <time>{format_iso_utc(sample.timestamp)}</time>")
    if sample.speed is not None:
        speed = _format_float(sample.speed, index, "speed")
        lines.append(f"        <extensions><speed>{speed}</speed></extensions>")
    lines.append("      </trkpt>")
    return lines


def _format_float(value: float, index: int, field: str) -> str:
    if not math.isfinite(value):
        raise SerializationError(
            f"Track point {index} has non-finite {field}: {value!r}"
        )
    return repr(float(value))


def _escape_xml(text: str) -> str:
    """Escape special XML characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


__all__ = ["read_gpx_route", "track_to_gpx", "write_gpx"]
