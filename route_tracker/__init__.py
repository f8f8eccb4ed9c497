"""Route tracking and statistics package."""

from .models import GeoPoint, PositionFix, SavedLocation, AuthorizationStatus
from .statistics import RouteStatistics, compute_statistics
from .store import InMemoryRouteStore, JsonFileRouteStore
from .tracker import RouteTracker, RouteTrackerConfig, TrackerListener
from .errors import (
    RouteTrackerError,
    RouteStoreError,
    RouteSerializationError,
    RouteDeserializationError,
    RouteNotFoundError,
)

__all__ = [
    "GeoPoint",
    "PositionFix",
    "SavedLocation",
    "AuthorizationStatus",
    "RouteStatistics",
    "compute_statistics",
    "InMemoryRouteStore",
    "JsonFileRouteStore",
    "RouteTracker",
    "RouteTrackerConfig",
    "TrackerListener",
    "RouteTrackerError",
    "RouteStoreError",
    "RouteSerializationError",
    "RouteDeserializationError",
    "RouteNotFoundError",
]
