"""Global pytest fixtures & helpers.

Adds project root to path and provides reusable fixtures for tracker,
statistics and store tests to avoid duplication across files.
"""
from __future__ import annotations

import os
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from route_tracker.models import AuthorizationStatus, GeoPoint, SavedLocation
from route_tracker.statistics import RouteStatistics
from route_tracker.store import InMemoryRouteStore
from route_tracker.tracker import RouteTracker, RouteTrackerConfig, TrackerListener

T0 = datetime(2025, 3, 18, 10, 0, 0, tzinfo=timezone.utc)


# --- Factory helpers -------------------------------------------------
def make_location(
    lat: float,
    lon: float,
    seconds: float = 0.0,
    title: str = "waypoint",
    subtitle: Optional[str] = None,
) -> SavedLocation:
    return SavedLocation(
        position=GeoPoint(latitude=lat, longitude=lon),
        title=title,
        subtitle=subtitle,
        timestamp=T0 + timedelta(seconds=seconds),
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeClock:
    """Manually advanced clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingListener(TrackerListener):
    def __init__(self) -> None:
        self.events: List[Tuple[str, object]] = []
        self._lock = threading.Lock()

    def _record(self, name: str, payload: object) -> None:
        with self._lock:
            self.events.append((name, payload))

    def names(self) -> List[str]:
        with self._lock:
            return [name for name, _ in self.events]

    def payloads(self, name: str) -> List[object]:
        with self._lock:
            return [payload for event, payload in self.events if event == name]

    def on_path_updated(self, path: Sequence[SavedLocation]) -> None:
        self._record("path_updated", list(path))

    def on_tracking_state_changed(self, enabled: bool) -> None:
        self._record("tracking_state_changed", enabled)

    def on_route_reset(self) -> None:
        self._record("route_reset", None)

    def on_statistics_computed(self, statistics: RouteStatistics) -> None:
        self._record("statistics_computed", statistics)

    def on_route_visibility_changed(self, visible, encoded_polyline) -> None:
        self._record("route_visibility_changed", (visible, encoded_polyline))

    def on_permission_required(self, message: str) -> None:
        self._record("permission_required", message)

    def on_position_error(self, error: BaseException) -> None:
        self._record("position_error", error)


class StaticResolver:
    """Resolver answering from a fixed mapping keyed by (lat, lon)."""

    def __init__(self, answers: Dict[Tuple[float, float], str] | None = None, default: str = "Main St") -> None:
        self.answers = answers or {}
        self.default = default
        self.calls: List[GeoPoint] = []

    def resolve(self, point: GeoPoint) -> str:
        self.calls.append(point)
        return self.answers.get(point.as_tuple(), self.default)

    def resolve_detailed(self, point: GeoPoint) -> str:
        return f"Place: {self.resolve(point)}"


class GatedResolver:
    """Resolver whose answers are released one coordinate at a time."""

    def __init__(self) -> None:
        self._gates: Dict[Tuple[float, float], threading.Event] = {}
        self._lock = threading.Lock()
        self.started: List[Tuple[float, float]] = []

    def _gate(self, key: Tuple[float, float]) -> threading.Event:
        with self._lock:
            return self._gates.setdefault(key, threading.Event())

    def release(self, lat: float, lon: float) -> None:
        self._gate((lat, lon)).set()

    def release_all(self) -> None:
        with self._lock:
            gates = list(self._gates.values())
        for gate in gates:
            gate.set()

    def resolve(self, point: GeoPoint) -> str:
        key = point.as_tuple()
        with self._lock:
            self.started.append(key)
        self._gate(key).wait(timeout=5)
        return f"address of {key[0]:.4f},{key[1]:.4f}"

    def resolve_detailed(self, point: GeoPoint) -> str:
        return self.resolve(point)


class FakePositionSource:
    def __init__(self, status: AuthorizationStatus = AuthorizationStatus.AUTHORIZED_WHEN_IN_USE) -> None:
        self.status = status
        self.calls: List[str] = []

    def start(self) -> None:
        self.calls.append("start")

    def stop(self) -> None:
        self.calls.append("stop")

    def request_permission(self) -> None:
        self.calls.append("request_permission")

    def authorization_status(self) -> AuthorizationStatus:
        return self.status


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryRouteStore:
    return InMemoryRouteStore()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def lookup_executor():
    executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="test-lookup")
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def make_tracker(clock, memory_store, listener):
    """Build a tracker wired to the fake clock, memory store and listener."""

    created: List[RouteTracker] = []

    def _make(**overrides) -> RouteTracker:
        tracking_enabled = overrides.pop("tracking_enabled", True)
        options = {"store": memory_store, "clock": clock}
        options.update(overrides)
        tracker = RouteTracker(RouteTrackerConfig(**options), tracking_enabled=tracking_enabled)
        tracker.add_listener(listener)
        created.append(tracker)
        return tracker

    yield _make
    for tracker in created:
        tracker.close()
