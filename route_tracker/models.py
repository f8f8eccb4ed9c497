from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class GeoPoint:
    latitude: float
    longitude: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class SavedLocation:
    """A recorded waypoint of the path.

    ``location_id`` only lives in memory. It ties an in-flight address lookup
    to the waypoint it was started for and is ignored by equality.
    """

    position: GeoPoint
    title: str
    subtitle: Optional[str]
    timestamp: datetime
    location_id: str = field(default_factory=lambda: uuid4().hex, compare=False)

    @property
    def latitude(self) -> float:
        return self.position.latitude

    @property
    def longitude(self) -> float:
        return self.position.longitude

    def with_subtitle(self, subtitle: str) -> "SavedLocation":
        return replace(self, subtitle=subtitle)


@dataclass(frozen=True, slots=True)
class PositionFix:
    """A single raw reading delivered by the position source."""

    position: GeoPoint
    captured_at: datetime
    horizontal_accuracy: float

    def age_seconds(self, now: datetime) -> float:
        return (now - self.captured_at).total_seconds()


class AuthorizationStatus(Enum):
    NOT_DETERMINED = "not_determined"
    RESTRICTED = "restricted"
    DENIED = "denied"
    AUTHORIZED_WHEN_IN_USE = "authorized_when_in_use"
    AUTHORIZED_ALWAYS = "authorized_always"

    @property
    def is_authorized(self) -> bool:
        return self in (
            AuthorizationStatus.AUTHORIZED_WHEN_IN_USE,
            AuthorizationStatus.AUTHORIZED_ALWAYS,
        )


RoutePath = list[SavedLocation]
