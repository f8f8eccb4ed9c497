"""Route tracker: turns raw position fixes into a filtered, persisted path.

The tracker is the single owner of the path. Every mutation (append, address
update, reset) happens under one re-entrant lock and queues a path snapshot
for a single writer thread, so stored snapshots land in mutation order and
never go back in time. Address lookups run on a thread pool and their results
re-enter through the same lock, matched to the waypoint they were started for
by its in-memory identifier.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
import logging
import threading
from typing import Any, Callable, List, Optional, Sequence

from .config import (
    ADDRESS_LOOKUP_WORKERS,
    ADDRESS_NOT_FOUND,
    ADDRESS_UNAVAILABLE,
    MAX_FIX_AGE_SECONDS,
    MIN_DISTANCE_THRESHOLD_M,
    PERMISSION_MESSAGE,
    STARTING_POINT_TITLE,
    TIME_TITLE_FORMAT,
)
from .errors import RouteDeserializationError, RouteNotFoundError, RouteStoreError
from .geo import encode_route, geodesic_distance_m
from .geocoding import AddressResolver
from .models import AuthorizationStatus, GeoPoint, PositionFix, RoutePath, SavedLocation
from .position import PositionSource
from .statistics import RouteStatistics, compute_statistics
from .store import JsonFileRouteStore, RouteStore

Clock = Callable[[], datetime]
DistanceFn = Callable[[GeoPoint, GeoPoint], float]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _align_tz(value: datetime, reference: datetime) -> datetime:
    """Return ``value`` with the same awareness as ``reference``.

    Naive readings are taken as local time.
    """

    if value.tzinfo is None and reference.tzinfo is not None:
        return value.astimezone()
    if value.tzinfo is not None and reference.tzinfo is None:
        return value.astimezone().replace(tzinfo=None)
    return value


class TrackerListener:
    """Receives tracker notifications. Override the hooks you care about."""

    def on_path_updated(self, path: Sequence[SavedLocation]) -> None:
        pass

    def on_tracking_state_changed(self, enabled: bool) -> None:
        pass

    def on_route_reset(self) -> None:
        pass

    def on_statistics_computed(self, statistics: RouteStatistics) -> None:
        pass

    def on_route_visibility_changed(
        self, visible: bool, encoded_polyline: Optional[str]
    ) -> None:
        pass

    def on_permission_required(self, message: str) -> None:
        pass

    def on_position_error(self, error: BaseException) -> None:
        pass


@dataclass(slots=True)
class RouteTrackerConfig:
    store: RouteStore = field(default_factory=JsonFileRouteStore)
    # None disables address enrichment; waypoints keep a null subtitle.
    resolver: AddressResolver | None = None
    position_source: PositionSource | None = None
    min_distance_m: float = MIN_DISTANCE_THRESHOLD_M
    max_fix_age_s: float = MAX_FIX_AGE_SECONDS
    title_format: str = TIME_TITLE_FORMAT
    clock: Clock = _local_now
    distance_fn: DistanceFn = geodesic_distance_m
    # Executor running address lookups; the tracker creates and owns one when
    # left as None.
    executor: Executor | None = None
    logger: logging.Logger | None = None


class RouteTracker:
    def __init__(
        self,
        config: RouteTrackerConfig | None = None,
        *,
        tracking_enabled: bool = True,
    ) -> None:
        self.config = config or RouteTrackerConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._lock = threading.RLock()
        self._path: RoutePath = []
        self._last_accepted: Optional[GeoPoint] = None
        self._tracking_enabled = tracking_enabled
        self._route_visible = False
        self._listeners: List[TrackerListener] = []

        self._owns_executor = self.config.executor is None
        self._executor: Executor | None = self.config.executor
        self._writer: ThreadPoolExecutor | None = None
        self._idle = threading.Condition(threading.Lock())
        self._in_flight = 0
        self._writes_pending = 0

    # ------------------------------------------------------------------
    # Observers / read-only state
    # ------------------------------------------------------------------
    def add_listener(self, listener: TrackerListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: TrackerListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def path(self) -> RoutePath:
        with self._lock:
            return list(self._path)

    @property
    def last_accepted_position(self) -> Optional[GeoPoint]:
        with self._lock:
            return self._last_accepted

    @property
    def tracking_enabled(self) -> bool:
        with self._lock:
            return self._tracking_enabled

    @property
    def route_visible(self) -> bool:
        with self._lock:
            return self._route_visible

    @property
    def is_at_start(self) -> bool:
        """True until a waypoint has been accepted (again, after a reset)."""

        with self._lock:
            return self._last_accepted is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def restore(self) -> RoutePath:
        """Load the persisted path; the last waypoint becomes the threshold anchor.

        A missing slot is the normal first-run state. An unreadable slot is
        logged and the tracker starts empty; the slot is overwritten by the
        next mutation.
        """

        try:
            loaded = self.config.store.load()
        except RouteNotFoundError:
            self._log.info("No saved route found; starting with an empty path")
            loaded = []
        except RouteDeserializationError as exc:
            self._log.error("Saved route could not be loaded: %s", exc)
            loaded = []
        with self._lock:
            self._path = list(loaded)
            self._last_accepted = self._path[-1].position if self._path else None
            snapshot = list(self._path)
            self._emit("on_path_updated", snapshot)
        if snapshot:
            self._log.info("Route restored with %d waypoints", len(snapshot))
        return snapshot

    def set_tracking(self, enabled: bool) -> None:
        """Enable or disable recording and start/stop the position source."""

        with self._lock:
            if enabled == self._tracking_enabled:
                return
            self._tracking_enabled = enabled
            source = self.config.position_source
            if source is not None:
                if enabled:
                    source.start()
                else:
                    source.stop()
            self._log.info("Tracking %s", "enabled" if enabled else "disabled")
            self._emit("on_tracking_state_changed", enabled)

    def reset(self) -> None:
        """Forget every waypoint, persist the empty path and notify listeners.

        Lookups still in flight for cleared waypoints are discarded when they
        complete.
        """

        with self._lock:
            self._path = []
            self._last_accepted = None
            self._persist([])
            self._log.info("Route reset")
            self._emit("on_route_reset")

    def close(self) -> None:
        """Wait for in-flight lookups, flush queued writes and release executors."""

        executor = self._executor
        if executor is not None and self._owns_executor:
            executor.shutdown(wait=True)
            self._executor = None
        with self._lock:
            writer = self._writer
        if writer is not None:
            # Kept referenced: later snapshots see the shutdown and write inline.
            writer.shutdown(wait=True)

    def __enter__(self) -> "RouteTracker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every started address lookup has been applied and stored.

        Returns False when ``timeout`` elapsed first.
        """

        with self._idle:
            return self._idle.wait_for(
                lambda: self._in_flight == 0 and self._writes_pending == 0,
                timeout=timeout,
            )

    def wait_persisted(self, timeout: float | None = None) -> bool:
        """Block until every queued path snapshot has reached the store."""

        with self._idle:
            return self._idle.wait_for(lambda: self._writes_pending == 0, timeout=timeout)

    # ------------------------------------------------------------------
    # Position updates
    # ------------------------------------------------------------------
    def on_fix(self, fix: PositionFix) -> Optional[SavedLocation]:
        return self.on_raw_position(
            fix.position, fix.captured_at, fix.horizontal_accuracy
        )

    def on_raw_position(
        self,
        point: GeoPoint,
        captured_at: datetime,
        horizontal_accuracy: float,
    ) -> Optional[SavedLocation]:
        """Record ``point`` when it is valid, fresh and far enough from the last one.

        Returns the new waypoint, or None when the reading was dropped.
        Dropped readings change nothing and emit nothing.
        """

        with self._lock:
            if not self._tracking_enabled:
                return None
            if horizontal_accuracy < 0:
                self._log.debug("Dropping fix with invalid accuracy %s", horizontal_accuracy)
                return None
            now = self.config.clock()
            age = (now - _align_tz(captured_at, now)).total_seconds()
            if age > self.config.max_fix_age_s:
                self._log.debug("Dropping stale fix (%.1fs old)", age)
                return None

            if self._last_accepted is None:
                title = STARTING_POINT_TITLE
            else:
                distance = self.config.distance_fn(self._last_accepted, point)
                if distance < self.config.min_distance_m:
                    return None
                title = now.strftime(self.config.title_format)

            location = SavedLocation(
                position=point, title=title, subtitle=None, timestamp=now
            )
            self._path.append(location)
            self._last_accepted = point
            snapshot = list(self._path)
            self._emit("on_path_updated", snapshot)
            self._persist(snapshot)
            self._log.debug(
                "Recorded waypoint #%d at %.6f,%.6f",
                len(snapshot),
                point.latitude,
                point.longitude,
            )

        self._request_address(location)
        return location

    def on_position_error(self, error: BaseException) -> None:
        """Report a position source failure; recording state is unchanged."""

        self._log.warning("Location update failed: %s", error)
        with self._lock:
            self._emit("on_position_error", error)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------
    def check_authorization(self) -> None:
        source = self.config.position_source
        if source is None:
            return
        self.handle_authorization_status(source.authorization_status())

    def handle_authorization_status(self, status: AuthorizationStatus) -> None:
        """React to a permission change reported by the position source."""

        source = self.config.position_source
        if status is AuthorizationStatus.NOT_DETERMINED:
            if source is not None:
                source.request_permission()
        elif status in (AuthorizationStatus.RESTRICTED, AuthorizationStatus.DENIED):
            self._log.warning("Location permission %s", status.value)
            with self._lock:
                self._emit("on_permission_required", PERMISSION_MESSAGE)
        elif status.is_authorized:
            with self._lock:
                enabled = self._tracking_enabled
            if enabled and source is not None:
                source.start()

    # ------------------------------------------------------------------
    # Presentation requests
    # ------------------------------------------------------------------
    def request_statistics(self) -> RouteStatistics:
        with self._lock:
            statistics = compute_statistics(self._path)
            self._emit("on_statistics_computed", statistics)
        return statistics

    def toggle_route_visibility(self) -> bool:
        """Flip route visibility; showing a route also publishes its statistics."""

        with self._lock:
            self._route_visible = not self._route_visible
            visible = self._route_visible
            if visible and len(self._path) >= 2:
                self._emit("on_route_visibility_changed", True, encode_route(self._path))
                self._emit("on_statistics_computed", compute_statistics(self._path))
            else:
                self._emit("on_route_visibility_changed", visible, None)
        return visible

    def detailed_address(self, point: GeoPoint) -> str:
        """Multi-line address of ``point`` for a detail view.

        Runs on the caller's thread and never raises.
        """

        resolver = self.config.resolver
        if resolver is None:
            return ADDRESS_UNAVAILABLE
        try:
            address = resolver.resolve_detailed(point)
        except Exception as exc:
            self._log.warning(
                "Detailed address lookup failed for %.6f,%.6f: %s",
                point.latitude,
                point.longitude,
                exc,
            )
            return ADDRESS_UNAVAILABLE
        if not isinstance(address, str) or not address.strip():
            return ADDRESS_NOT_FOUND
        return address

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _emit(self, hook: str, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, hook)(*args)
            except Exception as exc:
                self._log.error(
                    "Listener %r failed in %s: %s", listener, hook, exc, exc_info=True
                )

    def _persist(self, snapshot: Sequence[SavedLocation]) -> None:
        # Called under self._lock, so snapshots are queued in mutation order.
        with self._idle:
            self._writes_pending += 1
        if self._writer is None:
            self._writer = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="route-store"
            )
        try:
            future = self._writer.submit(self._write_snapshot, snapshot)
        except RuntimeError:
            # Writer already shut down by close().
            try:
                self._write_snapshot(snapshot)
            finally:
                self._write_finished(None)
            return
        future.add_done_callback(self._write_finished)

    def _write_snapshot(self, snapshot: Sequence[SavedLocation]) -> None:
        try:
            self.config.store.save(snapshot)
        except RouteStoreError as exc:
            # In-memory path stays authoritative; the next mutation retries.
            self._log.error("Failed to persist route (%d waypoints): %s", len(snapshot), exc)

    def _write_finished(self, future: "Future[None] | None") -> None:
        if future is not None and not future.cancelled() and future.exception() is not None:
            self._log.error("Route snapshot write crashed: %s", future.exception())
        with self._idle:
            self._writes_pending = max(0, self._writes_pending - 1)
            self._idle.notify_all()

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, ADDRESS_LOOKUP_WORKERS),
                thread_name_prefix="address-lookup",
            )
            self._owns_executor = True
        return self._executor

    def _request_address(self, location: SavedLocation) -> None:
        resolver = self.config.resolver
        if resolver is None:
            return
        with self._idle:
            self._in_flight += 1
        try:
            future = self._get_executor().submit(
                self._resolve_address, resolver, location.position
            )
        except RuntimeError as exc:
            # Executor already shut down.
            self._log.warning("Address lookup not scheduled: %s", exc)
            self._lookup_finished()
            return
        future.add_done_callback(
            lambda done: self._apply_address(location.location_id, done)
        )

    def _resolve_address(self, resolver: AddressResolver, point: GeoPoint) -> str:
        try:
            address = resolver.resolve(point)
        except Exception as exc:
            self._log.warning(
                "Address lookup failed for %.6f,%.6f: %s",
                point.latitude,
                point.longitude,
                exc,
            )
            return ADDRESS_UNAVAILABLE
        if not isinstance(address, str) or not address.strip():
            return ADDRESS_NOT_FOUND
        return address

    def _apply_address(self, location_id: str, future: "Future[str]") -> None:
        try:
            try:
                address = future.result()
            except Exception as exc:  # pragma: no cover - _resolve_address absorbs errors
                self._log.warning("Address lookup crashed: %s", exc)
                address = ADDRESS_UNAVAILABLE
            with self._lock:
                index = self._index_of(location_id)
                if index is None:
                    self._log.debug("Discarding address for a waypoint that was cleared")
                    return
                self._path[index] = self._path[index].with_subtitle(address)
                snapshot = list(self._path)
                self._emit("on_path_updated", snapshot)
                self._persist(snapshot)
        finally:
            self._lookup_finished()

    def _index_of(self, location_id: str) -> Optional[int]:
        for index, location in enumerate(self._path):
            if location.location_id == location_id:
                return index
        return None

    def _lookup_finished(self) -> None:
        with self._idle:
            self._in_flight -= 1
            if self._in_flight <= 0:
                self._in_flight = 0
                self._idle.notify_all()


__all__ = [
    "RouteTracker",
    "RouteTrackerConfig",
    "TrackerListener",
]
