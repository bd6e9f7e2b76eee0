"""Deterministic location source that replays recorded samples.

``ReplayLocationSource`` satisfies the ``LocationSource`` protocol and also
serves as the session clock: ``now()`` returns the timestamp of the most
recently emitted sample, so a replayed session has the same timings as the
recorded one.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .models import PermissionState, Sample
from .session import SampleCallback, SessionController
from .utils import to_utc_aware, utc_now

_LOG = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("time", "latitude", "longitude")
OPTIONAL_COLUMNS = ("elevation", "speed", "accuracy")


class ReplayLocationSource:
    """Feed a fixed sequence of samples to whoever subscribed last."""

    def __init__(
        self,
        samples: Iterable[Sample],
        *,
        permission: PermissionState = PermissionState.GRANTED,
        start_time: Optional[datetime] = None,
    ) -> None:
        self._samples: List[Sample] = list(samples)
        self._permission = permission
        self._lock = threading.Lock()
        self._callback: Optional[SampleCallback] = None
        self._cursor = 0
        if start_time is not None:
            self._clock = to_utc_aware(start_time)
        elif self._samples:
            self._clock = self._samples[0].timestamp
        else:
            self._clock = utc_now()

    # LocationSource -----------------------------------------------------
    def permission_state(self) -> PermissionState:
        return self._permission

    def start_updates(self, on_sample: SampleCallback) -> None:
        with self._lock:
            self._callback = on_sample

    def stop_updates(self) -> None:
        with self._lock:
            self._callback = None

    # Clock --------------------------------------------------------------
    def now(self) -> datetime:
        with self._lock:
            return self._clock

    def advance_to(self, moment: datetime) -> None:
        """Move the clock forward without emitting a sample."""
        moment = to_utc_aware(moment)
        with self._lock:
            if moment > self._clock:
                self._clock = moment

    # Playback -----------------------------------------------------------
    @property
    def remaining(self) -> int:
        with self._lock:
            return len(self._samples) - self._cursor

    def emit_next(self) -> Optional[Sample]:
        """Emit the next sample; returns it, or ``None`` when exhausted.

        A sample emitted while nobody is subscribed still advances the clock
        but is not delivered.
        """

        with self._lock:
            if self._cursor >= len(self._samples):
                return None
            sample = self._samples[self._cursor]
            self._cursor += 1
            if sample.timestamp > self._clock:
                self._clock = sample.timestamp
            callback = self._callback
        if callback is not None:
            callback(sample)
        return sample


def replay_session(
    controller: SessionController, source: ReplayLocationSource
) -> int:
    """Play every remaining sample of ``source`` into a running session.

    The controller is ticked after each sample at the replay clock so elapsed
    time and route deviation advance as they would live. Returns the number of
    samples emitted.
    """

    emitted = 0
    while source.emit_next() is not None:
        emitted += 1
        controller.tick(source.now())
        if emitted % 500 == 0:
            _LOG.debug("Replayed %d samples", emitted)
    _LOG.info("Replay finished: %d samples emitted", emitted)
    return emitted


def load_samples_csv(path: str | Path) -> List[Sample]:
    """Read recorded samples from a CSV file.

    Columns ``time``, ``latitude`` and ``longitude`` are required;
    ``elevation``, ``speed`` and ``accuracy`` are optional. Blank or negative
    speed/accuracy cells are treated as unavailable. Rows are returned sorted
    by time.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: Required columns are missing or a row holds invalid values.
    """

    csv_path = Path(path)
    if not csv_path.is_file():
        raise FileNotFoundError(f"Sample file not found: {csv_path}")
    df = pd.read_csv(csv_path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(
            f"Sample file {csv_path} is missing required columns: {', '.join(missing)}"
        )
    for column in OPTIONAL_COLUMNS:
        if column not in df.columns:
            df[column] = float("nan")

    df["time"] = pd.to_datetime(df["time"], utc=True, errors="coerce")
    bad_times = int(df["time"].isna().sum())
    if bad_times:
        raise ValueError(f"Sample file {csv_path} has {bad_times} unparseable time values")
    df = df.sort_values("time", kind="stable")

    samples: List[Sample] = []
    for row in df.itertuples(index=False):
        samples.append(
            Sample.from_reading(
                float(row.latitude),
                float(row.longitude),
                row.time.to_pydatetime(),
                elevation=_cell(row.elevation),
                speed=_cell(row.speed),
                horizontal_accuracy=_cell(row.accuracy),
            )
        )
    _LOG.info("Loaded %d samples from %s", len(samples), csv_path)
    return samples


def samples_to_frame(samples: Sequence[Sample]) -> pd.DataFrame:
    """Inverse of ``load_samples_csv``: one row per sample."""

    return pd.DataFrame(
        [
            {
                "time": s.timestamp,
                "latitude": s.coordinate.latitude,
                "longitude": s.coordinate.longitude,
                "elevation": s.coordinate.elevation,
                "speed": s.speed,
                "accuracy": s.horizontal_accuracy,
            }
            for s in samples
        ],
        columns=list(REQUIRED_COLUMNS + OPTIONAL_COLUMNS),
    )


def _cell(value: object) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


__all__ = [
    "ReplayLocationSource",
    "load_samples_csv",
    "replay_session",
    "samples_to_frame",
]
