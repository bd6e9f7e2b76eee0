"""Benchmark route preparation, deviation checks and sample aggregation."""

from __future__ import annotations

import argparse
import statistics
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Late imports rely on the adjusted sys.path above.
from trail_tracker.aggregator import TrackAggregator  # noqa: E402
from trail_tracker.geo import clear_route_cache, get_prepared_route  # noqa: E402
from trail_tracker.models import Coordinate, PlannedRoute, Sample  # noqa: E402
from trail_tracker.route_matcher import RouteMatcher  # noqa: E402


@dataclass(slots=True)
class StageDurations:
    """Timing measurements (in seconds) for one iteration."""

    prepare_route: float
    evaluate: float
    aggregate: float

    @property
    def total(self) -> float:
        return self.prepare_route + self.evaluate + self.aggregate


def _build_route(point_count: int) -> PlannedRoute:
    """A gently zig-zagging trail heading north from Lantau Peak."""

    base_lat = 22.2550
    base_lon = 113.9190
    step_deg = 1.0e-4
    waypoints = [
        Coordinate(base_lat + idx * step_deg, base_lon + (idx % 2) * step_deg / 2)
        for idx in range(point_count)
    ]
    return PlannedRoute(waypoints=waypoints, name="benchmark")


def _build_samples(route: PlannedRoute, every: int) -> List[Sample]:
    start = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
    samples = []
    for idx, waypoint in enumerate(route.waypoints[::every]):
        samples.append(
            Sample(
                coordinate=Coordinate(
                    waypoint.latitude + 2.0e-5,
                    waypoint.longitude,
                    100.0 + (idx % 20),
                ),
                timestamp=start + timedelta(seconds=idx * 5),
                speed=1.2,
                horizontal_accuracy=5.0,
            )
        )
    return samples


def _run_iteration(route: PlannedRoute, samples: List[Sample]) -> StageDurations:
    clear_route_cache()
    start = time.perf_counter()
    get_prepared_route(route.waypoints)
    prepare_route = time.perf_counter() - start

    matcher = RouteMatcher()
    start = time.perf_counter()
    for sample in samples:
        matcher.evaluate(sample.coordinate, route)
    evaluate = time.perf_counter() - start

    aggregator = TrackAggregator(samples[0].timestamp)
    start = time.perf_counter()
    for sample in samples:
        aggregator.accept(sample)
    aggregate = time.perf_counter() - start

    return StageDurations(prepare_route=prepare_route, evaluate=evaluate, aggregate=aggregate)


def run_benchmark(point_count: int, iterations: int, every: int = 10) -> Dict[str, float]:
    """Return mean and worst timings in milliseconds."""

    if point_count < 2:
        raise ValueError("point_count must be at least 2")
    if iterations <= 0:
        raise ValueError("iterations must be positive")

    route = _build_route(point_count)
    samples = _build_samples(route, max(every, 1))
    durations = [_run_iteration(route, samples) for _ in range(iterations)]

    return {
        "route_points": point_count,
        "samples": len(samples),
        "iterations": iterations,
        "mean_prepare_route_ms": statistics.fmean(d.prepare_route for d in durations) * 1000.0,
        "mean_evaluate_ms": statistics.fmean(d.evaluate for d in durations) * 1000.0,
        "mean_evaluate_per_sample_us": statistics.fmean(d.evaluate for d in durations)
        * 1_000_000.0
        / len(samples),
        "mean_aggregate_ms": statistics.fmean(d.aggregate for d in durations) * 1000.0,
        "worst_total_ms": max(d.total for d in durations) * 1000.0,
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Benchmark deviation checks against a long planned route",
    )
    parser.add_argument("--points", type=int, default=10000, help="Route waypoint count")
    parser.add_argument("--iterations", type=int, default=5, help="Repetitions for averaging")
    parser.add_argument(
        "--every",
        type=int,
        default=10,
        help="Emit one sample per this many waypoints",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    summary = run_benchmark(args.points, args.iterations, args.every)
    for key, value in summary.items():
        if isinstance(value, int):
            print(f"{key}: {value}")
        else:
            print(f"{key}: {value:.3f}")


if __name__ == "__main__":
    main()
