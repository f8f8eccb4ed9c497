"""Central configuration for the route tracker.

All values are constants imported by the rest of the package. Each one can be
overridden through an environment variable of the same name (optionally via a
local `.env`).
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


# Load .env from the current directory or any parent folder.
load_dotenv()


# ---------------------------------------------------------------------------
# Recording thresholds
# ---------------------------------------------------------------------------
# A new fix is recorded only when it lies at least this far (metres) from the
# last accepted waypoint.
MIN_DISTANCE_THRESHOLD_M = _env_float("MIN_DISTANCE_THRESHOLD_M", 100.0)

# Fixes older than this many seconds are cached readings and get discarded.
MAX_FIX_AGE_SECONDS = _env_float("MAX_FIX_AGE_SECONDS", 5.0)

# strftime pattern used to label every waypoint after the starting point.
TIME_TITLE_FORMAT = os.getenv("TIME_TITLE_FORMAT", "%H:%M:%S")


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
# JSON file holding the named slots. Paths can be absolute or relative.
ROUTE_STORE_FILE = os.getenv("ROUTE_STORE_FILE", "route_store.json")

# Name of the slot that holds the serialised path.
ROUTE_STORE_KEY = os.getenv("ROUTE_STORE_KEY", "savedRoute")


# ---------------------------------------------------------------------------
# Reverse geocoding
# ---------------------------------------------------------------------------
NOMINATIM_REVERSE_URL = os.getenv(
    "NOMINATIM_REVERSE_URL", "https://nominatim.openstreetmap.org/reverse"
)
# Nominatim requires a descriptive User-Agent; set your own contact details.
GEOCODER_USER_AGENT = os.getenv(
    "GEOCODER_USER_AGENT", "route-tracker/0.1.0 (reverse-geocode)"
)
GEOCODER_ACCEPT_LANGUAGE = os.getenv("GEOCODER_ACCEPT_LANGUAGE", "en")
GEOCODER_ZOOM = _env_int("GEOCODER_ZOOM", 18)

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_float("REQUEST_TIMEOUT", 15.0)

# HTTP session pool sizes for concurrent lookups.
HTTP_POOL_CONNECTIONS = 4
HTTP_POOL_MAXSIZE = 4

# Threads resolving addresses for freshly recorded waypoints.
ADDRESS_LOOKUP_WORKERS = _env_int("ADDRESS_LOOKUP_WORKERS", 2)

# Resolved addresses are cached by rounded coordinate. Precision 4 is roughly
# 11 m of latitude.
ADDRESS_CACHE_SIZE = _env_int("ADDRESS_CACHE_SIZE", 512)
ADDRESS_CACHE_TTL_SECONDS = _env_int("ADDRESS_CACHE_TTL_SECONDS", 24 * 3600)
ADDRESS_CACHE_PRECISION = _env_int("ADDRESS_CACHE_PRECISION", 4)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
STARTING_POINT_TITLE = "starting point"
ADDRESS_UNAVAILABLE = "address unavailable"
ADDRESS_NOT_FOUND = "address not found"
UNKNOWN_ADDRESS = "unknown address"
PERMISSION_MESSAGE = (
    "Location permission is required to record your route. "
    "Grant access in the system settings."
)
ROUTE_NEEDS_MORE_POINTS = "At least 2 points are needed to build a route"


# ---------------------------------------------------------------------------
# Excel export
# ---------------------------------------------------------------------------
# Automatically size columns after writing each sheet (openpyxl only).
EXCEL_AUTOSIZE_COLUMNS = True
EXCEL_AUTOSIZE_MAX_WIDTH = 60  # characters
EXCEL_AUTOSIZE_MIN_WIDTH = 6  # characters
EXCEL_AUTOSIZE_PADDING = 2  # extra characters added to the detected max
EXCEL_AUTOSIZE_MAX_ROWS = 5000  # skip autosize for very large sheets
