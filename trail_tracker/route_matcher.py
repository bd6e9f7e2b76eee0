"""Distance-from-route evaluation for the current position."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from .config import OFF_ROUTE_CLEAR_MARGIN_M, OFF_ROUTE_THRESHOLD_M
from .geo import distance, distance_to_polyline
from .models import Coordinate, DeviationState, PlannedRoute


class RouteMatcher:
    """Stateless matcher comparing a position with a planned route.

    ``threshold_m`` is a terrain-dependent tunable: on narrow trails with GPS
    jitter a low value raises false alarms, a high one misses real detours.
    """

    def __init__(
        self,
        threshold_m: float = OFF_ROUTE_THRESHOLD_M,
        clear_margin_m: float = OFF_ROUTE_CLEAR_MARGIN_M,
    ) -> None:
        if threshold_m < 0:
            raise ValueError("threshold_m must be >= 0")
        if clear_margin_m < 0:
            raise ValueError("clear_margin_m must be >= 0")
        self.threshold_m = threshold_m
        self.clear_margin_m = clear_margin_m

    def distance_to_route(self, current: Coordinate, route: PlannedRoute) -> float:
        """Return metres from ``current`` to the route (``inf`` without waypoints)."""

        waypoints = route.waypoints
        if len(waypoints) >= 2:
            return distance_to_polyline(current, waypoints)
        if not waypoints:
            return math.inf
        return min(distance(current, waypoint) for waypoint in waypoints)

    def evaluate(
        self,
        current: Coordinate,
        route: PlannedRoute,
        threshold_m: Optional[float] = None,
        *,
        evaluated_at: Optional[datetime] = None,
        position_age_s: Optional[float] = None,
    ) -> DeviationState:
        """Return the deviation reading for ``current`` against ``route``.

        A route without waypoints never reports off-route.
        """

        threshold = self.threshold_m if threshold_m is None else threshold_m
        gap = self.distance_to_route(current, route)
        off_route = math.isfinite(gap) and gap > threshold
        return DeviationState(
            distance_to_route_m=gap,
            is_off_route=off_route,
            evaluated_at=evaluated_at,
            position_age_s=position_age_s,
        )

    def evaluate_with_hysteresis(
        self,
        current: Coordinate,
        route: PlannedRoute,
        previous: Optional[DeviationState],
        *,
        evaluated_at: Optional[datetime] = None,
        position_age_s: Optional[float] = None,
    ) -> DeviationState:
        """Like ``evaluate`` but an off-route flag clears only below
        ``threshold_m - clear_margin_m``."""

        state = self.evaluate(
            current,
            route,
            evaluated_at=evaluated_at,
            position_age_s=position_age_s,
        )
        if (
            previous is None
            or not previous.is_off_route
            or state.is_off_route
            or self.clear_margin_m <= 0
        ):
            return state
        still_off = state.distance_to_route_m > self.threshold_m - self.clear_margin_m
        if not still_off:
            return state
        return DeviationState(
            distance_to_route_m=state.distance_to_route_m,
            is_off_route=True,
            evaluated_at=state.evaluated_at,
            position_age_s=state.position_age_s,
        )


__all__ = ["RouteMatcher"]
