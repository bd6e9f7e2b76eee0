"""Command line entry point.

Subcommands:
    replay   Replay a CSV of recorded samples through a full tracking session.
    export   Write a stored track as GPX.
    history  List stored tracks, or write them to an Excel/CSV report.
    delete   Remove a stored track.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import (
    HISTORY_OUTPUT_FILE,
    OFF_ROUTE_CLEAR_MARGIN_M,
    OFF_ROUTE_THRESHOLD_M,
    TRACK_STORE_DIR,
)
from .errors import (
    InvalidStateTransitionError,
    PermissionDeniedError,
    PersistenceError,
    SerializationError,
    TrackerError,
)
from .gpx import read_gpx_route, track_to_gpx, write_gpx
from .history import records_to_frame, write_history
from .models import PlannedRoute, TrackRecord
from .replay import ReplayLocationSource, load_samples_csv, replay_session
from .route_matcher import RouteMatcher
from .session import SessionController, SessionEvent
from .store import JsonTrackStore

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PERMISSION_DENIED = 3
EXIT_INVALID_STATE = 4
EXIT_PERSISTENCE = 5
EXIT_SERIALIZATION = 6


def _setup_logging(level: str = "INFO") -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=getattr(logging, level),
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.getLogger().setLevel(getattr(logging, level))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trail-tracker",
        description="Record hiking tracks, check route deviation and export GPX",
    )
    parser.add_argument(
        "--store-dir",
        default=TRACK_STORE_DIR,
        help=f"Directory holding stored tracks (default: {TRACK_STORE_DIR})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Python logging level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Replay recorded samples as a session")
    replay.add_argument("samples", help="CSV with time,latitude,longitude[,elevation,speed,accuracy]")
    route = replay.add_mutually_exclusive_group()
    route.add_argument("--route-polyline", help="Planned route as an encoded polyline")
    route.add_argument("--route-gpx", help="Planned route from a GPX file (rtept or trkpt)")
    replay.add_argument("--route-name", help="Name recorded with the track")
    replay.add_argument(
        "--threshold",
        type=float,
        default=OFF_ROUTE_THRESHOLD_M,
        help=f"Off-route threshold in metres (default: {OFF_ROUTE_THRESHOLD_M:g})",
    )
    replay.add_argument(
        "--clear-margin",
        type=float,
        default=OFF_ROUTE_CLEAR_MARGIN_M,
        help="Hysteresis margin in metres before an off-route flag clears",
    )
    replay.add_argument("--gpx-out", help="Also export the finished track to this GPX file")
    replay.add_argument(
        "--no-store",
        action="store_true",
        help="Do not persist the finished track",
    )

    export = sub.add_parser("export", help="Export a stored track as GPX")
    export.add_argument("record_id")
    export.add_argument(
        "--output-file",
        help="Output file path (default: <record id>.gpx)",
    )
    export.add_argument(
        "--no-file",
        action="store_true",
        help="Print to stdout instead of writing to file",
    )

    history = sub.add_parser("history", help="List stored tracks, newest first")
    history.add_argument(
        "--output-file",
        nargs="?",
        const=f"{HISTORY_OUTPUT_FILE}.xlsx",
        help="Write the list to an .xlsx or .csv report instead of printing it",
    )

    delete = sub.add_parser("delete", help="Delete a stored track")
    delete.add_argument("record_id")
    return parser


def _load_route(args: argparse.Namespace) -> Optional[PlannedRoute]:
    if args.route_polyline:
        return PlannedRoute.from_polyline(args.route_polyline, name=args.route_name)
    if args.route_gpx:
        text = Path(args.route_gpx).read_text(encoding="utf-8")
        return read_gpx_route(text, name=args.route_name)
    if args.route_name:
        return PlannedRoute(name=args.route_name)
    return None


def _cmd_replay(args: argparse.Namespace) -> int:
    samples = load_samples_csv(args.samples)
    route = _load_route(args)
    store = None if args.no_store else JsonTrackStore(args.store_dir)
    source = ReplayLocationSource(samples)
    controller = SessionController(
        source,
        store=store,
        route_matcher=RouteMatcher(args.threshold, args.clear_margin),
        clock=source.now,
        tick_interval_s=None,
    )
    off_route_events = 0

    def _count_off_route(event: SessionEvent) -> None:
        nonlocal off_route_events
        if event.kind == "sample" and event.deviation and event.deviation.is_off_route:
            off_route_events += 1

    controller.subscribe(_count_off_route)
    controller.start(route)
    replay_session(controller, source)
    rejected = controller.rejected_counts
    record = controller.stop()

    _print_summary(record)
    if rejected:
        print(
            "Rejected fixes: "
            + ", ".join(f"{reason.value}={count}" for reason, count in sorted(rejected.items()))
        )
    if route is not None and route.waypoints:
        print(f"Off-route fixes: {off_route_events}")
    if args.gpx_out:
        write_gpx(record, args.gpx_out)
    return EXIT_OK


def _cmd_export(args: argparse.Namespace) -> int:
    store = JsonTrackStore(args.store_dir)
    record = store.load(args.record_id)
    if record is None:
        LOGGER.error("No stored track with id %s", args.record_id)
        return EXIT_FAILURE
    if args.no_file:
        print(track_to_gpx(record), end="")
        return EXIT_OK
    output = args.output_file or f"{record.id}.gpx"
    write_gpx(record, output)
    return EXIT_OK


def _cmd_history(args: argparse.Namespace) -> int:
    store = JsonTrackStore(args.store_dir)
    records = store.list_records()
    if args.output_file:
        write_history(args.output_file, records)
        return EXIT_OK
    if not records:
        print("No stored tracks.")
        return EXIT_OK
    df = records_to_frame(records)
    df.insert(0, "Id", [r.id for r in records])
    print(df.to_string(index=False))
    return EXIT_OK


def _cmd_delete(args: argparse.Namespace) -> int:
    store = JsonTrackStore(args.store_dir)
    if not store.delete(args.record_id):
        LOGGER.error("No stored track with id %s", args.record_id)
        return EXIT_FAILURE
    print(f"Deleted {args.record_id}")
    return EXIT_OK


def _print_summary(record: TrackRecord) -> None:
    stats = record.stats
    print(f"Track {record.id} ({record.display_name})")
    print(f"  Duration:   {record.formatted_duration}")
    print(f"  Distance:   {stats.total_distance_km:.2f} km")
    print(f"  Avg speed:  {stats.average_speed_kmh:.1f} km/h")
    print(f"  Max speed:  {stats.max_speed_kmh:.1f} km/h")
    print(f"  Elev gain:  {stats.total_elevation_gain_m:.0f} m")
    if stats.min_elevation_m is not None and stats.max_elevation_m is not None:
        print(f"  Elevation:  {stats.min_elevation_m:.0f} - {stats.max_elevation_m:.0f} m")
    print(f"  Points:     {len(record.points)}")


_COMMANDS = {
    "replay": _cmd_replay,
    "export": _cmd_export,
    "history": _cmd_history,
    "delete": _cmd_delete,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.log_level)

    try:
        return _COMMANDS[args.command](args)
    except PermissionDeniedError as exc:
        LOGGER.error("%s", exc)
        return EXIT_PERMISSION_DENIED
    except InvalidStateTransitionError as exc:
        LOGGER.error("Session error: %s", exc)
        return EXIT_INVALID_STATE
    except PersistenceError as exc:
        LOGGER.error("Storage error: %s", exc)
        return EXIT_PERSISTENCE
    except SerializationError as exc:
        LOGGER.error("Export error: %s", exc)
        return EXIT_SERIALIZATION
    except TrackerError as exc:
        LOGGER.error("%s", exc)
        return EXIT_FAILURE
    except (FileNotFoundError, ValueError) as exc:
        LOGGER.error("Invalid input: %s", exc)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
