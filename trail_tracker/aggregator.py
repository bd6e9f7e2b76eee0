"""Running track statistics for a single recording session.

The aggregator is fed only samples that already passed the ``SampleFilter``.
Distance follows odometer semantics: every hop between consecutive accepted
samples is added and nothing is ever subtracted, so backtracking still counts.
Elevation gain only sums the positive deltas between consecutive samples that
both carry an elevation; descents never reduce it.

All state sits behind one re-entrant lock so ``snapshot`` never observes a
half-applied sample when fixes and timer ticks arrive on different threads.
"""

from __future__ import annotations

from datetime import datetime
from threading import RLock
from typing import List, Optional, Tuple

from .config import USE_3D_DISTANCE
from .geo import distance, distance_3d
from .models import Sample, TrackStats
from .utils import to_utc_aware

_MPS_TO_KMH = 3.6


class TrackAggregator:
    """Accumulates distance, speed and elevation statistics sample by sample."""

    def __init__(
        self,
        start_time: datetime,
        *,
        use_3d_distance: bool = USE_3D_DISTANCE,
    ) -> None:
        self._lock = RLock()
        self._start_time = to_utc_aware(start_time)
        self._distance_fn = distance_3d if use_3d_distance else distance
        self._samples: List[Sample] = []
        self._stats = TrackStats(start_time=self._start_time)
        self._paused_seconds = 0.0
        self._paused_at: Optional[datetime] = None

    @property
    def start_time(self) -> datetime:
        return self._start_time

    @property
    def samples(self) -> Tuple[Sample, ...]:
        with self._lock:
            return tuple(self._samples)

    @property
    def last_sample(self) -> Optional[Sample]:
        with self._lock:
            return self._samples[-1] if self._samples else None

    @property
    def is_paused(self) -> bool:
        with self._lock:
            return self._paused_at is not None

    def accept(self, sample: Sample) -> None:
        """Fold an accepted sample into the running statistics."""

        with self._lock:
            stats = self._stats
            previous = self._samples[-1] if self._samples else None
            self._samples.append(sample)
            stats.sample_count = len(self._samples)
            stats.last_sample_time = sample.timestamp

            if previous is not None:
                hop = self._distance_fn(previous.coordinate, sample.coordinate)
                stats.total_distance_m += max(hop, 0.0)

            if sample.speed is not None:
                stats.max_speed_kmh = max(stats.max_speed_kmh, sample.speed * _MPS_TO_KMH)

            elevation = sample.coordinate.elevation
            if elevation is not None:
                if stats.max_elevation_m is None or elevation > stats.max_elevation_m:
                    stats.max_elevation_m = elevation
                if stats.min_elevation_m is None or elevation < stats.min_elevation_m:
                    stats.min_elevation_m = elevation
                prev_elevation = (
                    previous.coordinate.elevation if previous is not None else None
                )
                if prev_elevation is not None and elevation > prev_elevation:
                    stats.total_elevation_gain_m += elevation - prev_elevation

            self._refresh_elapsed(sample.timestamp)

    def tick(self, now: datetime) -> None:
        """Refresh elapsed time and average speed without a new sample."""

        with self._lock:
            self._refresh_elapsed(to_utc_aware(now))

    def mark_paused(self, at: datetime) -> None:
        with self._lock:
            if self._paused_at is not None:
                return
            at = to_utc_aware(at)
            self._refresh_elapsed(at)
            self._paused_at = at

    def mark_resumed(self, at: datetime) -> None:
        with self._lock:
            if self._paused_at is None:
                return
            at = to_utc_aware(at)
            self._paused_seconds += max((at - self._paused_at).total_seconds(), 0.0)
            self._paused_at = None
            self._refresh_elapsed(at)

    def active_seconds(self, now: datetime) -> float:
        """Seconds since start, excluding paused spans."""

        with self._lock:
            reference = self._paused_at or to_utc_aware(now)
            elapsed = (reference - self._start_time).total_seconds()
            return max(elapsed - self._paused_seconds, 0.0)

    def snapshot(self) -> TrackStats:
        """Return a consistent point-in-time copy of the statistics."""

        with self._lock:
            return self._stats.copy()

    def _refresh_elapsed(self, now: datetime) -> None:
        stats = self._stats
        elapsed = self.active_seconds(now)
        # Late ticks never shrink elapsed time below what was already reported.
        stats.elapsed_seconds = max(stats.elapsed_seconds, elapsed)
        if stats.elapsed_seconds > 0:
            stats.average_speed_kmh = (stats.total_distance_m / 1000.0) / (
                stats.elapsed_seconds / 3600.0
            )
        else:
            stats.average_speed_kmh = 0.0


__all__ = ["TrackAggregator"]
