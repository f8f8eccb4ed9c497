"""Position source port and a replay source fed from recorded fixes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Protocol

import pandas as pd

from .errors import PositionSourceError
from .models import AuthorizationStatus, GeoPoint, PositionFix

LOGGER = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("timestamp", "latitude", "longitude")
ACCURACY_COLUMN = "horizontal_accuracy"


class PositionSource(Protocol):
    """Device positioning service as seen by the tracker."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def request_permission(self) -> None: ...

    def authorization_status(self) -> AuthorizationStatus: ...


def read_fixes(csv_path: str | Path) -> List[PositionFix]:
    """Load recorded fixes from a CSV file.

    Columns: ``timestamp`` (ISO 8601, naive values are taken as UTC),
    ``latitude``, ``longitude`` and optionally ``horizontal_accuracy``
    (metres, negative marks an invalid fix). Rows that cannot be parsed are
    skipped with a warning.

    Raises:
        PositionSourceError: If the file is missing or lacks required columns.
    """

    path = Path(csv_path)
    try:
        frame = pd.read_csv(path)
    except (FileNotFoundError, pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise PositionSourceError(f"Unable to read fixes from {path}: {exc}") from exc

    missing = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
    if missing:
        raise PositionSourceError(
            f"Fixes file {path} missing columns {missing}. Found: {list(frame.columns)}"
        )

    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True, errors="coerce")
    frame["latitude"] = pd.to_numeric(frame["latitude"], errors="coerce")
    frame["longitude"] = pd.to_numeric(frame["longitude"], errors="coerce")
    if ACCURACY_COLUMN in frame.columns:
        frame[ACCURACY_COLUMN] = pd.to_numeric(
            frame[ACCURACY_COLUMN], errors="coerce"
        ).fillna(0.0)
    else:
        frame[ACCURACY_COLUMN] = 0.0

    valid = frame.dropna(subset=list(REQUIRED_COLUMNS))
    skipped = len(frame) - len(valid)
    if skipped:
        LOGGER.warning("Skipped %d unparsable rows in %s", skipped, path)

    fixes: List[PositionFix] = []
    for row in valid.itertuples(index=False):
        fixes.append(
            PositionFix(
                position=GeoPoint(
                    latitude=float(row.latitude), longitude=float(row.longitude)
                ),
                captured_at=row.timestamp.to_pydatetime(),
                horizontal_accuracy=float(getattr(row, ACCURACY_COLUMN)),
            )
        )
    return fixes


class ReplayPositionSource:
    """Plays back recorded fixes as if they came from the device.

    Replayed fixes are only emitted between ``start()`` and ``stop()``.
    Permission is always granted.
    """

    def __init__(self, fixes: List[PositionFix]) -> None:
        self._fixes = list(fixes)
        self._running = False
        self.start_calls = 0
        self.stop_calls = 0

    @classmethod
    def from_csv(cls, csv_path: str | Path) -> "ReplayPositionSource":
        return cls(read_fixes(csv_path))

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self.start_calls += 1
        self._running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self._running = False

    def request_permission(self) -> None:
        LOGGER.debug("Replay source permission requested; always granted")

    def authorization_status(self) -> AuthorizationStatus:
        return AuthorizationStatus.AUTHORIZED_ALWAYS

    def __iter__(self) -> Iterator[PositionFix]:
        for fix in self._fixes:
            if not self._running:
                return
            yield fix

    def __len__(self) -> int:
        return len(self._fixes)


__all__ = ["PositionSource", "ReplayPositionSource", "read_fixes"]
