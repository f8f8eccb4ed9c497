"""Reverse geocoding of recorded waypoints (lat/lon -> address text).

Resolvers never raise into the tracker: a failed lookup resolves to
``ADDRESS_UNAVAILABLE`` and an empty result to ``ADDRESS_NOT_FOUND``.

Public Nominatim instances are rate limited. Set a descriptive User-Agent via
``GEOCODER_USER_AGENT`` and keep the lookup pool small.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional, Protocol

import requests
from cachetools import TTLCache
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import (
    ADDRESS_CACHE_PRECISION,
    ADDRESS_CACHE_SIZE,
    ADDRESS_CACHE_TTL_SECONDS,
    ADDRESS_NOT_FOUND,
    ADDRESS_UNAVAILABLE,
    GEOCODER_ACCEPT_LANGUAGE,
    GEOCODER_USER_AGENT,
    GEOCODER_ZOOM,
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
    NOMINATIM_REVERSE_URL,
    REQUEST_TIMEOUT,
    UNKNOWN_ADDRESS,
)
from .errors import AddressLookupError
from .models import GeoPoint

_LOGGER = logging.getLogger(__name__)

Placemark = Dict[str, Any]


class AddressResolver(Protocol):
    def resolve(self, point: GeoPoint) -> str:
        """Return a short address; never raises."""

    def resolve_detailed(self, point: GeoPoint) -> str:
        """Return a multi-line labelled address; never raises."""


def _build_retry() -> Retry:
    return Retry(
        total=3,
        backoff_factor=1.0,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )


def create_geocoder_session() -> Session:
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "User-Agent": GEOCODER_USER_AGENT,
            "Accept": "application/json",
        }
    )
    return session


def coord_key(point: GeoPoint, precision: int = ADDRESS_CACHE_PRECISION) -> str:
    """Stable cache key built from coordinates rounded to ``precision`` decimals."""

    return (
        f"{round(point.latitude, precision):.{precision}f},"
        f"{round(point.longitude, precision):.{precision}f}"
    )


def _first(address: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def format_short_address(placemark: Placemark) -> str:
    """Street, neighbourhood and town joined by commas."""

    address = placemark.get("address") or {}
    components = [
        part
        for part in (
            _first(address, "road", "pedestrian", "footway", "path"),
            _first(address, "suburb", "neighbourhood", "quarter"),
            _first(address, "city", "town", "village", "municipality"),
        )
        if part
    ]
    if components:
        return ", ".join(components)
    name = placemark.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return UNKNOWN_ADDRESS


def format_detailed_address(placemark: Placemark) -> str:
    """One labelled line per known address component."""

    address = placemark.get("address") or {}
    lines: List[str] = []
    name = placemark.get("name")
    if isinstance(name, str) and name.strip():
        lines.append(f"Place: {name.strip()}")
    street = _first(address, "road", "pedestrian", "footway", "path")
    if street:
        number = _first(address, "house_number")
        lines.append(f"Street: {street} No: {number}" if number else f"Street: {street}")
    neighbourhood = _first(address, "suburb", "neighbourhood", "quarter")
    if neighbourhood:
        lines.append(f"Neighbourhood: {neighbourhood}")
    district = _first(address, "city_district", "town", "city", "village")
    if district:
        lines.append(f"District: {district}")
    province = _first(address, "province", "state", "region")
    if province:
        lines.append(f"Province: {province}")
    postcode = _first(address, "postcode")
    if postcode:
        lines.append(f"Postal Code: {postcode}")
    country = _first(address, "country")
    if country:
        lines.append(f"Country: {country}")
    if not lines:
        return UNKNOWN_ADDRESS
    return "\n".join(lines)


class NominatimAddressResolver:
    """Address resolver backed by the OpenStreetMap Nominatim reverse API."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        base_url: str = NOMINATIM_REVERSE_URL,
        accept_language: str = GEOCODER_ACCEPT_LANGUAGE,
        timeout: float = REQUEST_TIMEOUT,
        cache_size: int = ADDRESS_CACHE_SIZE,
        cache_ttl: int = ADDRESS_CACHE_TTL_SECONDS,
    ) -> None:
        self._session = session or create_geocoder_session()
        self._base_url = base_url
        self._accept_language = accept_language
        self._timeout = timeout
        self._cache: TTLCache[str, Placemark] = TTLCache(
            maxsize=max(1, cache_size), ttl=max(1, cache_ttl)
        )
        self._cache_lock = RLock()

    def resolve(self, point: GeoPoint) -> str:
        return self._resolve_with(point, format_short_address)

    def resolve_detailed(self, point: GeoPoint) -> str:
        return self._resolve_with(point, format_detailed_address)

    def _resolve_with(self, point: GeoPoint, formatter: Any) -> str:
        try:
            placemark = self.lookup(point)
        except AddressLookupError as exc:
            _LOGGER.warning(
                "Reverse geocoding failed for %.6f,%.6f: %s",
                point.latitude,
                point.longitude,
                exc,
            )
            return ADDRESS_UNAVAILABLE
        if placemark is None:
            return ADDRESS_NOT_FOUND
        return formatter(placemark)

    def lookup(self, point: GeoPoint) -> Optional[Placemark]:
        """Return the raw placemark for ``point`` (``None`` when nothing is there).

        Raises:
            AddressLookupError: On transport failures or unparsable responses.
        """

        key = coord_key(point)
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        params = {
            "format": "jsonv2",
            "lat": f"{point.latitude:.8f}",
            "lon": f"{point.longitude:.8f}",
            "zoom": str(GEOCODER_ZOOM),
            "addressdetails": "1",
            "accept-language": self._accept_language,
        }
        _LOGGER.debug("GET %s params=%s", self._base_url, params)
        try:
            response = self._session.get(
                self._base_url, params=params, timeout=self._timeout
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise AddressLookupError(str(exc)) from exc

        if not isinstance(payload, dict):
            raise AddressLookupError("Unexpected reverse geocoding payload")
        if payload.get("error") or not (payload.get("address") or payload.get("name")):
            return None
        with self._cache_lock:
            self._cache[key] = payload
        return payload


__all__ = [
    "AddressResolver",
    "NominatimAddressResolver",
    "create_geocoder_session",
    "coord_key",
    "format_short_address",
    "format_detailed_address",
]
