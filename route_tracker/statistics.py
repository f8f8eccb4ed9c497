"""Route statistics derived from a recorded path.

Pure transformation: given the waypoints of a path it produces an immutable
``RouteStatistics`` snapshot. Nothing here touches storage or the tracker.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from .geo import polyline_length_m
from .models import SavedLocation


@dataclass(frozen=True, slots=True)
class RouteStatistics:
    total_distance: float  # metres
    total_duration: float  # seconds
    average_speed: float  # metres / second
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "RouteStatistics":
        return cls(total_distance=0.0, total_duration=0.0, average_speed=0.0)


def compute_statistics(path: Sequence[SavedLocation]) -> RouteStatistics:
    """Summarise a path as distance, duration and average speed.

    Points are ordered by timestamp on a copy before anything is derived, so
    the result does not depend on insertion order and the input is left
    untouched. Distance is measured along the recorded polyline, not start to
    end. Paths with fewer than 2 points give the all-zero result.
    """

    if len(path) < 2:
        return RouteStatistics.empty()

    # sorted() is stable, equal timestamps keep their relative order.
    ordered = sorted(path, key=lambda loc: loc.timestamp)
    start_time = ordered[0].timestamp
    end_time = ordered[-1].timestamp
    duration = max(0.0, (end_time - start_time).total_seconds())
    distance = polyline_length_m([loc.position for loc in ordered])
    speed = distance / duration if duration > 0 else 0.0
    return RouteStatistics(
        total_distance=distance,
        total_duration=duration,
        average_speed=speed,
        start_time=start_time,
        end_time=end_time,
    )


def format_duration(seconds: float) -> str:
    """Format seconds as ``H:MM:SS`` (or ``M:SS`` under an hour)."""

    total = int(round(max(0.0, seconds)))
    hours, remainder = divmod(total, 3600)
    mins, sec = divmod(remainder, 60)
    if hours:
        return f"{hours}:{mins:02d}:{sec:02d}"
    return f"{mins}:{sec:02d}"


def format_distance(meters: float) -> str:
    if meters >= 1000:
        return f"{meters / 1000.0:.2f} km"
    return f"{meters:.0f} m"


def format_speed(meters_per_second: float) -> str:
    return f"{meters_per_second * 3.6:.2f} km/h"


def statistics_summary(stats: RouteStatistics) -> dict[str, str]:
    """Return display-ready labels for a statistics snapshot."""

    return {
        "Total Time": format_duration(stats.total_duration),
        "Total Distance": format_distance(stats.total_distance),
        "Average Speed": format_speed(stats.average_speed),
        "Start": stats.start_time.isoformat() if stats.start_time else "-",
        "End": stats.end_time.isoformat() if stats.end_time else "-",
    }


__all__ = [
    "RouteStatistics",
    "compute_statistics",
    "format_duration",
    "format_distance",
    "format_speed",
    "statistics_summary",
]
