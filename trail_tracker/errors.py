"""Central error types used across the tracking engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import PermissionState, SessionState


class TrackerError(RuntimeError):
    """Base error for tracking engine failures."""


class PermissionDeniedError(TrackerError):
    """Raised when a session is started without location access."""

    def __init__(self, permission: "PermissionState") -> None:
        self.permission = permission
        super().__init__(
            f"Location access is not granted (state={permission.value}). "
            "Grant location permission and start the session again."
        )


class InvalidStateTransitionError(TrackerError):
    """Raised when a session operation is invoked from an incompatible state."""

    def __init__(self, operation: str, state: "SessionState") -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation}() while session is {state.value}")


class SerializationError(TrackerError):
    """Raised when a track record cannot be rendered to the export format."""


class PersistenceError(TrackerError):
    """Raised when the track store fails to save, load or delete a record."""

    def __init__(self, message: str, record_id: str | None = None) -> None:
        self.record_id = record_id
        super().__init__(message)


__all__ = [
    "TrackerError",
    "PermissionDeniedError",
    "InvalidStateTransitionError",
    "SerializationError",
    "PersistenceError",
]
