"""Central error types used across the application."""

from __future__ import annotations


class RouteTrackerError(RuntimeError):
    """Base error for route tracking failures."""


class RouteStoreError(RouteTrackerError):
    """Base error for failures of the persisted route slot."""


class RouteSerializationError(RouteStoreError):
    """Raised when a path cannot be serialised or written to its slot."""


class RouteDeserializationError(RouteStoreError):
    """Raised when the persisted slot holds data that is not a valid path."""


class RouteNotFoundError(RouteStoreError):
    """Raised when no path has been persisted yet (expected on first run)."""


class AddressLookupError(RouteTrackerError):
    """Raised when the reverse geocoding service cannot be reached or parsed."""


class PositionSourceError(RouteTrackerError):
    """Raised when recorded fixes cannot be read."""


__all__ = [
    "RouteTrackerError",
    "RouteStoreError",
    "RouteSerializationError",
    "RouteDeserializationError",
    "RouteNotFoundError",
    "AddressLookupError",
    "PositionSourceError",
]
