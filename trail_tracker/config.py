"""Central configuration for the trail tracking engine.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Each tunable can be overridden through an environment
variable (optionally via a local `.env`).
"""

from __future__ import annotations

import os

from dotenv import load_dotenv


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env from the current directory or any parent folder.
load_dotenv()


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------
# Mean Earth radius (metres) shared by haversine and the local route projection.
EARTH_RADIUS_M = 6_371_000.0

# Fold the elevation delta into the odometer (Pythagorean) when both samples
# carry an elevation. Off by default: horizontal distance only.
USE_3D_DISTANCE = _env_bool("USE_3D_DISTANCE", False)

# Number of projected planned routes kept in memory.
ROUTE_CACHE_SIZE = _env_int("ROUTE_CACHE_SIZE", 32)


# ---------------------------------------------------------------------------
# Sample filtering
# ---------------------------------------------------------------------------
# Fixes with a reported horizontal accuracy worse than this are dropped.
SAMPLE_MAX_HORIZONTAL_ACCURACY_M = _env_float("SAMPLE_MAX_HORIZONTAL_ACCURACY_M", 50.0)

# Implied speed (m/s) between consecutive fixes above which the newer fix is
# treated as a GPS jump. 15 m/s is roughly 54 km/h.
SAMPLE_MAX_SPEED_MPS = _env_float("SAMPLE_MAX_SPEED_MPS", 15.0)


# ---------------------------------------------------------------------------
# Route deviation
# ---------------------------------------------------------------------------
# Distance (metres) from the planned route beyond which the hiker is off-route.
# Narrow trails with GPS jitter trade false alarms against missed detours here.
OFF_ROUTE_THRESHOLD_M = _env_float("OFF_ROUTE_THRESHOLD_M", 200.0)

# Once off-route, the flag clears only below (threshold - margin). 0 disables
# hysteresis.
OFF_ROUTE_CLEAR_MARGIN_M = _env_float("OFF_ROUTE_CLEAR_MARGIN_M", 0.0)

# Seconds without a fresh fix after which a deviation reading is reported stale.
DEVIATION_STALE_AFTER_SECONDS = _env_float("DEVIATION_STALE_AFTER_SECONDS", 30.0)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------
# Periodic tick cadence (seconds) while a session is active.
TICK_INTERVAL_SECONDS = _env_float("TICK_INTERVAL_SECONDS", 1.0)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
# Directory (absolute or relative) holding one JSON document per track record.
TRACK_STORE_DIR = os.getenv("TRACK_STORE_DIR", "tracks")

# Maximum number of decoded records kept in the store's read cache.
TRACK_STORE_CACHE_SIZE = _env_int("TRACK_STORE_CACHE_SIZE", 64)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------
GPX_CREATOR = os.getenv("GPX_CREATOR", "trail_tracker")
GPX_DEFAULT_NAME = os.getenv("GPX_DEFAULT_NAME", "Untitled Route")

# History report name; an .xlsx or .csv suffix is appended by the writer.
HISTORY_OUTPUT_FILE = os.getenv("HISTORY_OUTPUT_FILE", "track_history")

# Keep history sheets in a fixed column order.
HISTORY_COLUMN_ORDER = [
    "Route",
    "Start",
    "End",
    "Duration",
    "Distance (km)",
    "Avg Speed (km/h)",
    "Max Speed (km/h)",
    "Elev Gain (m)",
    "Min Elev (m)",
    "Max Elev (m)",
    "Points",
]

# Automatically size columns after writing the history sheet (openpyxl only).
EXCEL_AUTOSIZE_COLUMNS = True
EXCEL_AUTOSIZE_MAX_WIDTH = 50  # characters
EXCEL_AUTOSIZE_MIN_WIDTH = 6  # characters
EXCEL_AUTOSIZE_PADDING = 2  # extra characters added to the detected max
EXCEL_AUTOSIZE_MAX_ROWS = 5000  # skip autosize for very large sheets
