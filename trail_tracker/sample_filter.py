"""Plausibility gate applied to raw location fixes before aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import SAMPLE_MAX_HORIZONTAL_ACCURACY_M, SAMPLE_MAX_SPEED_MPS
from .geo import distance
from .models import RejectionReason, Sample


@dataclass(slots=True)
class SampleFilter:
    """Reject sensor noise: poor accuracy, time going backwards and GPS jumps.

    The filter is a pure predicate. It keeps no history; the caller passes the
    last accepted sample as ``previous``.
    """

    max_horizontal_accuracy_m: float = SAMPLE_MAX_HORIZONTAL_ACCURACY_M
    max_speed_mps: float = SAMPLE_MAX_SPEED_MPS

    def __post_init__(self) -> None:
        if self.max_horizontal_accuracy_m <= 0:
            raise ValueError("max_horizontal_accuracy_m must be greater than zero")
        if self.max_speed_mps <= 0:
            raise ValueError("max_speed_mps must be greater than zero")

    def check(
        self, candidate: Sample, previous: Optional[Sample] = None
    ) -> Optional[RejectionReason]:
        """Return why ``candidate`` should be dropped, or ``None`` to keep it."""

        accuracy = candidate.horizontal_accuracy
        if accuracy is not None and accuracy > self.max_horizontal_accuracy_m:
            return RejectionReason.LOW_ACCURACY
        if previous is None:
            return None
        dt = (candidate.timestamp - previous.timestamp).total_seconds()
        if dt <= 0:
            return RejectionReason.NON_MONOTONIC_TIME
        implied_speed = distance(previous.coordinate, candidate.coordinate) / dt
        if implied_speed > self.max_speed_mps:
            return RejectionReason.IMPLAUSIBLE_SPEED
        return None

    def accept(self, candidate: Sample, previous: Optional[Sample] = None) -> bool:
        return self.check(candidate, previous) is None


__all__ = ["SampleFilter"]
