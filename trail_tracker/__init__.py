"""Trail tracking and route deviation engine."""

from .errors import (
    InvalidStateTransitionError,
    PermissionDeniedError,
    PersistenceError,
    SerializationError,
    TrackerError,
)
from .gpx import track_to_gpx, write_gpx
from .main import main
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
from .session import SessionController
from .store import InMemoryTrackStore, JsonTrackStore

__all__ = [
    "main",
    "Coordinate",
    "DeviationState",
    "PermissionState",
    "PlannedRoute",
    "RejectionReason",
    "Sample",
    "SessionState",
    "TrackRecord",
    "TrackStats",
    "SessionController",
    "InMemoryTrackStore",
    "JsonTrackStore",
    "track_to_gpx",
    "write_gpx",
    "TrackerError",
    "PermissionDeniedError",
    "InvalidStateTransitionError",
    "SerializationError",
    "PersistenceError",
]
