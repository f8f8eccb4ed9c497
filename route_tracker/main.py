"""Command line entry point for the route tracker.

Usage examples:

    # Feed recorded fixes through the tracker and print the route statistics
    python -m route_tracker replay fixes.csv

    # Same, without reverse geocoding and with a 50 m threshold
    python -m route_tracker replay fixes.csv --no-geocode --threshold 50

    # Show statistics of the stored route / export it / clear it
    python -m route_tracker stats
    python -m route_tracker export route.xlsx
    python -m route_tracker reset
"""

from __future__ import annotations

import argparse
from datetime import datetime
import logging
from typing import Optional, Sequence

from .config import (
    MAX_FIX_AGE_SECONDS,
    MIN_DISTANCE_THRESHOLD_M,
    ROUTE_NEEDS_MORE_POINTS,
    ROUTE_STORE_FILE,
    ROUTE_STORE_KEY,
)
from .errors import PositionSourceError, RouteStoreError
from .excel_writer import write_route_workbook
from .geocoding import NominatimAddressResolver
from .models import RoutePath
from .position import ReplayPositionSource
from .statistics import RouteStatistics, compute_statistics, statistics_summary
from .store import JsonFileRouteStore
from .tracker import RouteTracker, RouteTrackerConfig

LOGGER = logging.getLogger("route_tracker")


def _setup_logging(level: str) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=getattr(logging, level),
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


class ReplayClock:
    """Clock that follows the newest fix time seen so far during a replay.

    A row logged after a newer one reads as a late delivery and ages against
    that newer time.
    """

    def __init__(self) -> None:
        self.now: Optional[datetime] = None

    def __call__(self) -> datetime:
        if self.now is None:
            return datetime.now().astimezone()
        return self.now

    def advance_to(self, moment: datetime) -> None:
        if self.now is None or moment > self.now:
            self.now = moment


def _print_statistics(stats: RouteStatistics, point_count: int) -> None:
    print(f"Waypoints: {point_count}")
    if point_count < 2:
        print(ROUTE_NEEDS_MORE_POINTS)
    for label, value in statistics_summary(stats).items():
        print(f"{label}: {value}")


def _load_stored_path(store: JsonFileRouteStore) -> RoutePath:
    tracker = RouteTracker(RouteTrackerConfig(store=store))
    return tracker.restore()


def replay(
    store: JsonFileRouteStore,
    fixes_csv: str,
    *,
    geocode: bool = True,
    threshold_m: float = MIN_DISTANCE_THRESHOLD_M,
    max_age_s: float = MAX_FIX_AGE_SECONDS,
    fresh: bool = False,
) -> RoutePath:
    """Run recorded fixes through a tracker persisting into ``store``."""

    source = ReplayPositionSource.from_csv(fixes_csv)
    clock = ReplayClock()
    config = RouteTrackerConfig(
        store=store,
        resolver=NominatimAddressResolver() if geocode else None,
        position_source=source,
        min_distance_m=threshold_m,
        max_fix_age_s=max_age_s,
        clock=clock,
    )
    with RouteTracker(config) as tracker:
        if fresh:
            tracker.reset()
        else:
            tracker.restore()
        tracker.check_authorization()
        accepted = 0
        for fix in source:
            clock.advance_to(fix.captured_at)
            if tracker.on_fix(fix) is not None:
                accepted += 1
        LOGGER.info("Replayed %d fixes, recorded %d waypoints", len(source), accepted)
        tracker.wait_idle()
        return tracker.path


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="route_tracker",
        description="Record a route from position fixes and summarise it",
    )
    parser.add_argument(
        "--store",
        default=ROUTE_STORE_FILE,
        help=f"JSON file holding the saved route (default: {ROUTE_STORE_FILE})",
    )
    parser.add_argument(
        "--key",
        default=ROUTE_STORE_KEY,
        help=f"Slot name inside the store file (default: {ROUTE_STORE_KEY})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay_parser = sub.add_parser("replay", help="Feed recorded fixes from a CSV file")
    replay_parser.add_argument("fixes", help="CSV with timestamp,latitude,longitude[,horizontal_accuracy]")
    replay_parser.add_argument(
        "--no-geocode",
        action="store_true",
        help="Skip reverse geocoding of recorded waypoints",
    )
    replay_parser.add_argument(
        "--threshold",
        type=float,
        default=MIN_DISTANCE_THRESHOLD_M,
        help="Minimum distance (m) between recorded waypoints",
    )
    replay_parser.add_argument(
        "--max-age",
        type=float,
        default=MAX_FIX_AGE_SECONDS,
        help="Discard fixes logged more than this many seconds behind the newest one",
    )
    replay_parser.add_argument(
        "--fresh",
        action="store_true",
        help="Clear the stored route before replaying",
    )

    sub.add_parser("stats", help="Print statistics of the stored route")

    export_parser = sub.add_parser("export", help="Export the stored route to Excel")
    export_parser.add_argument("output", help="Target .xlsx file")

    sub.add_parser("reset", help="Clear the stored route")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.log_level)
    store = JsonFileRouteStore(args.store, key=args.key)

    try:
        if args.command == "replay":
            path = replay(
                store,
                args.fixes,
                geocode=not args.no_geocode,
                threshold_m=args.threshold,
                max_age_s=args.max_age,
                fresh=args.fresh,
            )
            _print_statistics(compute_statistics(path), len(path))
        elif args.command == "stats":
            path = _load_stored_path(store)
            _print_statistics(compute_statistics(path), len(path))
        elif args.command == "export":
            path = _load_stored_path(store)
            target = write_route_workbook(args.output, path)
            print(f"Exported {len(path)} waypoints to {target}")
        elif args.command == "reset":
            with RouteTracker(RouteTrackerConfig(store=store)) as tracker:
                tracker.reset()
            print("Route reset")
    except (PositionSourceError, RouteStoreError) as exc:
        LOGGER.error("%s", exc)
        return 1
    return 0
