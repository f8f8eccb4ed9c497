"""Persistence of the recorded path in a named durable slot.

The whole path is written on every save, overwriting the previous contents of
the slot. The wire format is a JSON array of waypoint objects::

    [{"latitude": 41.0, "longitude": 29.0, "title": "starting point",
      "subtitle": null, "timestamp": "2025-03-18T10:00:00.123456+03:00"}]

There is no versioning, a format change needs every stored slot rewritten.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .config import ROUTE_STORE_FILE, ROUTE_STORE_KEY
from .errors import (
    RouteDeserializationError,
    RouteNotFoundError,
    RouteSerializationError,
)
from .models import GeoPoint, RoutePath, SavedLocation

_LOGGER = logging.getLogger(__name__)


class RouteStore(Protocol):
    """Port the tracker persists through."""

    def save(self, path: Sequence[SavedLocation]) -> None:
        """Overwrite the slot with ``path``; raises RouteSerializationError."""

    def load(self) -> RoutePath:
        """Return the stored path.

        Raises RouteNotFoundError when nothing was saved yet and
        RouteDeserializationError when the slot content is malformed.
        """


def location_to_dict(location: SavedLocation) -> Dict[str, Any]:
    return {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "title": location.title,
        "subtitle": location.subtitle,
        "timestamp": location.timestamp.isoformat(),
    }


def location_from_dict(record: Any) -> SavedLocation:
    if not isinstance(record, dict):
        raise RouteDeserializationError(f"Expected an object, got {type(record).__name__}")
    try:
        latitude = record["latitude"]
        longitude = record["longitude"]
        title = record["title"]
        subtitle = record.get("subtitle")
        raw_timestamp = record["timestamp"]
    except KeyError as exc:
        raise RouteDeserializationError(f"Stored waypoint missing field {exc}") from exc
    if isinstance(latitude, bool) or not isinstance(latitude, (int, float)):
        raise RouteDeserializationError(f"Invalid latitude: {latitude!r}")
    if isinstance(longitude, bool) or not isinstance(longitude, (int, float)):
        raise RouteDeserializationError(f"Invalid longitude: {longitude!r}")
    if not isinstance(title, str):
        raise RouteDeserializationError(f"Invalid title: {title!r}")
    if subtitle is not None and not isinstance(subtitle, str):
        raise RouteDeserializationError(f"Invalid subtitle: {subtitle!r}")
    if not isinstance(raw_timestamp, str):
        raise RouteDeserializationError(f"Invalid timestamp: {raw_timestamp!r}")
    try:
        timestamp = datetime.fromisoformat(raw_timestamp)
    except ValueError as exc:
        raise RouteDeserializationError(f"Invalid timestamp: {raw_timestamp!r}") from exc
    return SavedLocation(
        position=GeoPoint(latitude=float(latitude), longitude=float(longitude)),
        title=title,
        subtitle=subtitle,
        timestamp=timestamp,
    )


def serialize_path(path: Sequence[SavedLocation]) -> str:
    """Return the JSON text stored for ``path``."""

    try:
        return json.dumps(
            [location_to_dict(loc) for loc in path],
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError, AttributeError) as exc:
        raise RouteSerializationError(f"Unable to serialise path: {exc}") from exc


def deserialize_path(text: str) -> RoutePath:
    try:
        records = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RouteDeserializationError(f"Stored path is not valid JSON: {exc}") from exc
    return _path_from_records(records)


def _path_from_records(records: Any) -> RoutePath:
    if not isinstance(records, list):
        raise RouteDeserializationError("Stored path must be a JSON array")
    return [location_from_dict(record) for record in records]


class InMemoryRouteStore:
    """Keeps the serialised slot in memory; useful for tests and dry runs."""

    def __init__(self) -> None:
        self._slot: Optional[str] = None
        self._lock = threading.Lock()
        self.save_count = 0

    def save(self, path: Sequence[SavedLocation]) -> None:
        text = serialize_path(path)
        with self._lock:
            self._slot = text
            self.save_count += 1

    def load(self) -> RoutePath:
        with self._lock:
            text = self._slot
        if text is None:
            raise RouteNotFoundError("No route has been saved")
        return deserialize_path(text)


class JsonFileRouteStore:
    """Named slot inside a JSON document on disk.

    The document maps slot names to values so several slots can share a file;
    only ``key`` is read or written by this store. Writes go to a temporary
    file that then replaces the document.
    """

    def __init__(
        self,
        path: str | Path = ROUTE_STORE_FILE,
        key: str = ROUTE_STORE_KEY,
    ) -> None:
        base = Path(path)
        self._path = base if base.is_absolute() else Path.cwd() / base
        self._key = key
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def key(self) -> str:
        return self._key

    def save(self, path: Sequence[SavedLocation]) -> None:
        records: List[Dict[str, Any]] = json.loads(serialize_path(path))
        with self._lock:
            document = self._read_document_for_update()
            document[self._key] = records
            try:
                self._write_document(document)
            except OSError as exc:
                raise RouteSerializationError(
                    f"Failed writing route store {self._path}: {exc}"
                ) from exc
        _LOGGER.debug("Saved %d waypoints to %s[%s]", len(records), self._path, self._key)

    def load(self) -> RoutePath:
        with self._lock:
            try:
                text = self._path.read_text(encoding="utf-8")
            except FileNotFoundError as exc:
                raise RouteNotFoundError(f"Route store not found: {self._path}") from exc
            except OSError as exc:
                raise RouteDeserializationError(
                    f"Failed reading route store {self._path}: {exc}"
                ) from exc
        try:
            document = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as exc:
            raise RouteDeserializationError(
                f"Route store {self._path} is not valid JSON: {exc}"
            ) from exc
        if not isinstance(document, dict):
            raise RouteDeserializationError(f"Route store {self._path} must hold an object")
        if self._key not in document:
            raise RouteNotFoundError(f"No slot named {self._key!r} in {self._path}")
        return _path_from_records(document[self._key])

    def _read_document_for_update(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise RouteSerializationError(
                f"Failed reading route store {self._path}: {exc}"
            ) from exc
        try:
            document = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError:
            document = None
        if not isinstance(document, dict):
            # Keep a copy of the unreadable document and start a fresh one.
            backup = self._path.with_suffix(self._path.suffix + ".broken")
            try:
                backup.write_text(text, encoding="utf-8")
            except OSError as exc:
                raise RouteSerializationError(
                    f"Failed backing up unreadable route store {self._path}: {exc}"
                ) from exc
            _LOGGER.warning(
                "Route store %s was unreadable; moved aside to %s", self._path, backup
            )
            return {}
        return document

    def _write_document(self, document: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            json.dump(document, handle, ensure_ascii=False, indent=2)
        temp_path.replace(self._path)


__all__ = [
    "RouteStore",
    "InMemoryRouteStore",
    "JsonFileRouteStore",
    "serialize_path",
    "deserialize_path",
    "location_to_dict",
    "location_from_dict",
]
