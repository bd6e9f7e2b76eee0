"""Global pytest fixtures & helpers.

Adds project root to path and provides a fake location source, a manual clock
and sample factories shared by the session, aggregator and export tests.
"""
from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from trail_tracker.geo import clear_route_cache
from trail_tracker.models import Coordinate, PermissionState, Sample
from trail_tracker.session import SessionController
from trail_tracker.store import InMemoryTrackStore

T0 = datetime(2024, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


class FakeLocationSource:
    """Location source the test drives by hand."""

    def __init__(self, permission=PermissionState.GRANTED):
        self.permission = permission
        self.callback = None
        self.start_calls = 0
        self.stop_calls = 0

    def permission_state(self):
        return self.permission

    def start_updates(self, on_sample):
        self.callback = on_sample
        self.start_calls += 1

    def stop_updates(self):
        self.callback = None
        self.stop_calls += 1

    @property
    def emitting(self):
        return self.callback is not None

    def emit(self, sample):
        """Deliver ``sample`` if updates are on; returns whether it was delivered."""
        if self.callback is None:
            return False
        self.callback(sample)
        return True


class ManualClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


# --- Factory helpers -------------------------------------------------
def make_sample(lat, lon, seconds=0.0, elevation=None, speed=None, accuracy=5.0):
    return Sample(
        coordinate=Coordinate(lat, lon, elevation),
        timestamp=T0 + timedelta(seconds=seconds),
        speed=speed,
        horizontal_accuracy=accuracy,
    )


# --- Fixtures --------------------------------------------------------
@pytest.fixture(autouse=True)
def fresh_route_cache():
    clear_route_cache()
    yield
    clear_route_cache()


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def sample_factory():
    return make_sample


@pytest.fixture
def location_source():
    return FakeLocationSource()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def memory_store():
    return InMemoryTrackStore()


@pytest.fixture
def controller(location_source, clock, memory_store):
    """Controller without a background ticker; tests call ``tick`` directly."""
    return SessionController(
        location_source,
        store=memory_store,
        clock=clock,
        tick_interval_s=None,
    )


@pytest.fixture
def scenario_samples():
    """~100 m east with +10 m climb, then a 5 m descent in place."""
    return [
        make_sample(0.0, 0.0, 0, elevation=0.0),
        make_sample(0.0, 0.0009, 10, elevation=10.0),
        make_sample(0.0, 0.0009, 20, elevation=5.0),
    ]
