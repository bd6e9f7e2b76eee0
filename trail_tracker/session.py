"""Tracking session lifecycle.

``SessionController`` owns one ``TrackAggregator`` per session and moves
through ``IDLE -> ACTIVE <-> PAUSED -> FINALIZED``. ``reset`` returns to
``IDLE`` from any state, discarding in-progress data.

Location fixes (``on_sample``) and timer ticks (``tick``) may arrive on
different threads; every mutation runs under a single re-entrant lock, so
``stop`` and ``reset`` never interleave with a half-processed fix. Listeners
are notified after the lock is released (or on the calling thread when the
callback was re-entered from inside a locked operation).
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, List, Optional, Protocol

from .aggregator import TrackAggregator
from .config import TICK_INTERVAL_SECONDS, USE_3D_DISTANCE
from .errors import (
    InvalidStateTransitionError,
    PermissionDeniedError,
    PersistenceError,
)
from .models import (
    Coordinate,
    DeviationState,
    PermissionState,
    PlannedRoute,
    RejectionReason,
    Sample,
    SessionState,
    TrackRecord,
    TrackStats,
)
from .route_matcher import RouteMatcher
from .sample_filter import SampleFilter
from .store import TrackStore
from .ticker import Ticker, join_worker
from .utils import to_utc_aware, utc_now

SampleCallback = Callable[[Sample], None]
Clock = Callable[[], datetime]


class LocationSource(Protocol):
    """Producer of location fixes (GPS provider, replay file, test double)."""

    def permission_state(self) -> PermissionState: ...

    def start_updates(self, on_sample: SampleCallback) -> None: ...

    def stop_updates(self) -> None: ...


@dataclass(frozen=True, slots=True)
class SessionEvent:
    """Notification delivered to session listeners.

    ``kind`` is one of ``"state"``, ``"sample"`` or ``"tick"``.
    """

    kind: str
    state: SessionState
    stats: TrackStats
    deviation: Optional[DeviationState]


SessionListener = Callable[[SessionEvent], None]


class SessionController:
    """Drive a tracking session from start to a finalized ``TrackRecord``."""

    def __init__(
        self,
        source: LocationSource,
        *,
        store: Optional[TrackStore] = None,
        sample_filter: Optional[SampleFilter] = None,
        route_matcher: Optional[RouteMatcher] = None,
        clock: Clock = utc_now,
        tick_interval_s: Optional[float] = TICK_INTERVAL_SECONDS,
        use_3d_distance: bool = USE_3D_DISTANCE,
    ) -> None:
        self._log = logging.getLogger(self.__class__.__name__)
        self._source = source
        self._store = store
        self._filter = sample_filter or SampleFilter()
        self._matcher = route_matcher or RouteMatcher()
        self._clock = clock
        self._use_3d_distance = use_3d_distance
        self._lock = RLock()
        self._listeners: List[SessionListener] = []
        self._ticker = Ticker(tick_interval_s, self.tick) if tick_interval_s else None

        self._state = SessionState.IDLE
        self._aggregator: Optional[TrackAggregator] = None
        self._route = PlannedRoute()
        self._deviation: Optional[DeviationState] = None
        self._rejected: Counter[RejectionReason] = Counter()
        self._dropped_while_paused = 0
        self._last_record: Optional[TrackRecord] = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def route(self) -> PlannedRoute:
        with self._lock:
            return self._route

    @property
    def deviation(self) -> Optional[DeviationState]:
        with self._lock:
            return self._deviation

    @property
    def last_record(self) -> Optional[TrackRecord]:
        with self._lock:
            return self._last_record

    @property
    def rejected_counts(self) -> Dict[RejectionReason, int]:
        with self._lock:
            return dict(self._rejected)

    @property
    def dropped_while_paused(self) -> int:
        with self._lock:
            return self._dropped_while_paused

    @property
    def samples(self) -> tuple[Sample, ...]:
        with self._lock:
            if self._aggregator is None:
                return ()
            return self._aggregator.samples

    def snapshot(self) -> TrackStats:
        """Current statistics; zeroed when no session is in progress."""

        with self._lock:
            if self._aggregator is not None:
                return self._aggregator.snapshot()
            if self._state is SessionState.FINALIZED and self._last_record:
                return self._last_record.stats.copy()
            return TrackStats()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self, route: Optional[PlannedRoute] = None) -> None:
        """Begin a new session, optionally against a planned route.

        Raises:
            InvalidStateTransitionError: A session is already active or paused.
            PermissionDeniedError: The location source has not been granted access.
        """

        with self._lock:
            if self._state not in (SessionState.IDLE, SessionState.FINALIZED):
                raise InvalidStateTransitionError("start", self._state)
            permission = self._source.permission_state()
            if permission is not PermissionState.GRANTED:
                self._log.warning("Cannot start session: location permission=%s", permission.value)
                raise PermissionDeniedError(permission)
            now = self._now()
            self._route = route or PlannedRoute()
            self._aggregator = TrackAggregator(now, use_3d_distance=self._use_3d_distance)
            self._deviation = None
            self._rejected.clear()
            self._dropped_while_paused = 0
            self._state = SessionState.ACTIVE
            self._log.info(
                "Session started at %s route=%s waypoints=%d",
                now.isoformat(),
                self._route.name or self._route.route_id or "-",
                len(self._route.waypoints),
            )
            try:
                self._source.start_updates(self.on_sample)
            except Exception:
                self._discard()
                raise
            if self._ticker is not None:
                self._ticker.start()
            event = self._event("state")
        self._notify(event)

    def pause(self) -> None:
        with self._lock:
            if self._state is not SessionState.ACTIVE:
                raise InvalidStateTransitionError("pause", self._state)
            aggregator = self._require_aggregator("pause")
            self._source.stop_updates()
            aggregator.mark_paused(self._now())
            self._state = SessionState.PAUSED
            self._log.info("Session paused")
            event = self._event("state")
        self._notify(event)

    def resume(self) -> None:
        with self._lock:
            if self._state is not SessionState.PAUSED:
                raise InvalidStateTransitionError("resume", self._state)
            aggregator = self._require_aggregator("resume")
            # Stays PAUSED if the source refuses to restart.
            self._source.start_updates(self.on_sample)
            aggregator.mark_resumed(self._now())
            self._state = SessionState.ACTIVE
            self._log.info("Session resumed")
            event = self._event("state")
        self._notify(event)

    def stop(self) -> TrackRecord:
        """Stop the session, finalize and persist its ``TrackRecord``.

        Raises:
            InvalidStateTransitionError: No session is active or paused.
            PersistenceError: The configured store failed to save the record.
                The record is still available through ``last_record``.
        """

        with self._lock:
            if self._state not in (SessionState.ACTIVE, SessionState.PAUSED):
                raise InvalidStateTransitionError("stop", self._state)
            self._source.stop_updates()
            retired = self._ticker.cancel() if self._ticker is not None else None
            record = self._finalize()
            event = self._event("state")
        join_worker(retired)
        self._notify(event)
        if self._store is not None:
            try:
                self._store.save(record)
            except PersistenceError:
                self._log.error("Failed to persist track record id=%s", record.id)
                raise
            self._log.info("Track record id=%s saved", record.id)
        return record

    def _finalize(self) -> TrackRecord:
        """Freeze the aggregator into an immutable ``TrackRecord``.

        Called by ``stop`` with the lock held. The aggregator is discarded
        afterwards.
        """

        aggregator = self._require_aggregator("stop")
        end_time = self._now()
        aggregator.tick(end_time)
        stats = aggregator.snapshot()
        record = TrackRecord(
            id=str(uuid.uuid4()),
            start_time=aggregator.start_time,
            end_time=max(end_time, aggregator.start_time),
            stats=stats,
            points=aggregator.samples,
            route_id=self._route.route_id,
            route_name=self._route.name,
        )
        self._last_record = record
        self._aggregator = None
        self._deviation = None
        self._state = SessionState.FINALIZED
        self._log.info(
            "Session finalized id=%s points=%d distance=%.1fm gain=%.1fm rejected=%d",
            record.id,
            len(record.points),
            stats.total_distance_m,
            stats.total_elevation_gain_m,
            sum(self._rejected.values()),
        )
        return record

    def reset(self) -> None:
        """Discard any in-progress session and return to ``IDLE``."""

        with self._lock:
            if self._state in (SessionState.ACTIVE, SessionState.PAUSED):
                self._source.stop_updates()
                self._log.info("Session reset; in-progress track discarded")
            retired = self._ticker.cancel() if self._ticker is not None else None
            self._discard()
            event = self._event("state")
        join_worker(retired)
        self._notify(event)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------
    def on_sample(self, sample: Sample) -> None:
        """Location callback: filter, aggregate and match one fix."""

        with self._lock:
            if self._state is SessionState.PAUSED:
                self._dropped_while_paused += 1
                self._log.debug("Dropped fix received while paused at %s", sample.timestamp)
                return
            if self._state is not SessionState.ACTIVE:
                return
            aggregator = self._aggregator
            if aggregator is None:
                return
            reason = self._filter.check(sample, aggregator.last_sample)
            if reason is not None:
                self._rejected[reason] += 1
                self._log.debug(
                    "Rejected fix at %s reason=%s", sample.timestamp, reason.value
                )
                return
            aggregator.accept(sample)
            self._update_deviation(sample.coordinate, sample.timestamp, 0.0)
            event = self._event("sample")
        self._notify(event)

    def tick(self, now: Optional[datetime] = None) -> None:
        """Periodic refresh: elapsed-time stats and route re-evaluation."""

        with self._lock:
            if self._state is not SessionState.ACTIVE:
                return
            aggregator = self._aggregator
            if aggregator is None:
                return
            current = to_utc_aware(now) if now is not None else self._now()
            aggregator.tick(current)
            last = aggregator.last_sample
            if last is not None:
                age = max((current - last.timestamp).total_seconds(), 0.0)
                self._update_deviation(last.coordinate, current, age)
            event = self._event("tick")
        self._notify(event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _now(self) -> datetime:
        return to_utc_aware(self._clock())

    def _update_deviation(
        self, position: Coordinate, evaluated_at: datetime, age: float
    ) -> None:
        if not self._route.waypoints:
            self._deviation = None
            return
        previous = self._deviation
        state = self._matcher.evaluate_with_hysteresis(
            position,
            self._route,
            previous,
            evaluated_at=evaluated_at,
            position_age_s=age,
        )
        was_off = previous.is_off_route if previous is not None else False
        if state.is_off_route and not was_off:
            self._log.warning(
                "Off route: %.0fm from planned route (threshold %.0fm)",
                state.distance_to_route_m,
                self._matcher.threshold_m,
            )
        elif was_off and not state.is_off_route:
            self._log.info("Back on route (%.0fm)", state.distance_to_route_m)
        self._deviation = state

    def _require_aggregator(self, operation: str) -> TrackAggregator:
        aggregator = self._aggregator
        if aggregator is None:
            raise InvalidStateTransitionError(operation, self._state)
        return aggregator

    def _discard(self) -> None:
        self._aggregator = None
        self._deviation = None
        self._route = PlannedRoute()
        self._state = SessionState.IDLE

    def _event(self, kind: str) -> SessionEvent:
        return SessionEvent(
            kind=kind,
            state=self._state,
            stats=self.snapshot(),
            deviation=self._deviation,
        )

    def _notify(self, event: SessionEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                self._log.warning("Session listener %r failed", listener, exc_info=True)


__all__ = ["LocationSource", "SessionController", "SessionEvent", "SessionListener"]
