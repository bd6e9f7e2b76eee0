"""General utility helpers shared across modules."""

from __future__ import annotations

from datetime import datetime, timezone


def format_duration(seconds: float) -> str:
    """Format seconds as ``h:mm:ss`` (or ``m:ss`` below one hour)."""

    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    mins, sec = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{mins:02d}:{sec:02d}"
    return f"{mins}:{sec:02d}"


def to_utc_aware(dt: datetime) -> datetime:
    """Return ``dt`` as a UTC-aware datetime (naive values are read as UTC)."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso_utc(dt: datetime) -> str:
    """Render an ISO-8601 UTC timestamp with a ``Z`` suffix.

    Whole seconds are emitted when there is no sub-second part, milliseconds
    otherwise.
    """

    value = to_utc_aware(dt)
    timespec = "seconds" if value.microsecond == 0 else "milliseconds"
    return value.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def parse_iso_datetime(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix accepted) into a UTC datetime."""

    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return to_utc_aware(parsed)
