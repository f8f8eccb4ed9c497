"""Tests for the reverse geocoding adapter."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
import requests

from route_tracker import geocoding
from route_tracker.config import ADDRESS_NOT_FOUND, ADDRESS_UNAVAILABLE, UNKNOWN_ADDRESS
from route_tracker.geocoding import (
    NominatimAddressResolver,
    coord_key,
    format_detailed_address,
    format_short_address,
)
from route_tracker.models import GeoPoint

PLACEMARK: Dict[str, Any] = {
    "name": "Galata Tower",
    "display_name": "Galata Tower, Bereketzade, Beyoglu, Istanbul, Turkey",
    "address": {
        "road": "Galata Kulesi Sk.",
        "house_number": "8",
        "suburb": "Bereketzade",
        "town": "Beyoglu",
        "city": "Istanbul",
        "province": "Istanbul",
        "postcode": "34421",
        "country": "Turkey",
    },
}


class _FakeResponse:
    def __init__(self, payload: Any, status: int = 200) -> None:
        self._payload = payload
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, *responses: Any) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_short_address_joins_street_neighbourhood_and_city() -> None:
    assert format_short_address(PLACEMARK) == "Galata Kulesi Sk., Bereketzade, Istanbul"


def test_short_address_falls_back_to_name_then_unknown() -> None:
    assert format_short_address({"name": "Lighthouse", "address": {}}) == "Lighthouse"
    assert format_short_address({"address": {"country": "Turkey"}}) == UNKNOWN_ADDRESS


def test_detailed_address_lists_labelled_components() -> None:
    lines = format_detailed_address(PLACEMARK).splitlines()
    assert lines == [
        "Place: Galata Tower",
        "Street: Galata Kulesi Sk. No: 8",
        "Neighbourhood: Bereketzade",
        "District: Beyoglu",
        "Province: Istanbul",
        "Postal Code: 34421",
        "Country: Turkey",
    ]
    assert format_detailed_address({}) == UNKNOWN_ADDRESS


def test_coord_key_rounds_coordinates() -> None:
    assert coord_key(GeoPoint(41.025634, 28.974189), precision=4) == "41.0256,28.9742"


def test_resolver_queries_nominatim_and_caches() -> None:
    session = _FakeSession(_FakeResponse(PLACEMARK))
    resolver = NominatimAddressResolver(session=session, base_url="https://geo.test/reverse")
    point = GeoPoint(41.025634, 28.974189)

    assert resolver.resolve(point) == "Galata Kulesi Sk., Bereketzade, Istanbul"
    # Served from the cache; a second HTTP call would exhaust the fake session.
    assert resolver.resolve_detailed(point).startswith("Place: Galata Tower")

    assert len(session.calls) == 1
    call = session.calls[0]
    assert call["url"] == "https://geo.test/reverse"
    assert call["params"]["lat"] == "41.02563400"
    assert call["params"]["format"] == "jsonv2"


@pytest.mark.parametrize(
    "response",
    [
        requests.ConnectionError("offline"),
        _FakeResponse({}, status=503),
        _FakeResponse(ValueError("not json")),
        _FakeResponse(["unexpected"]),
    ],
)
def test_resolver_failures_become_unavailable(response: Any) -> None:
    resolver = NominatimAddressResolver(session=_FakeSession(response))
    assert resolver.resolve(GeoPoint(1.0, 2.0)) == ADDRESS_UNAVAILABLE


def test_resolver_empty_result_is_not_found() -> None:
    session = _FakeSession(
        _FakeResponse({"error": "Unable to geocode"}), _FakeResponse({"error": "Unable to geocode"})
    )
    resolver = NominatimAddressResolver(session=session)
    point = GeoPoint(0.0, -160.0)
    assert resolver.resolve(point) == ADDRESS_NOT_FOUND
    # Misses are not cached.
    assert resolver.resolve(point) == ADDRESS_NOT_FOUND
    assert len(session.calls) == 2


def test_default_session_sends_user_agent(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(geocoding, "GEOCODER_USER_AGENT", "route-tracker-tests/1.0")
    session = geocoding.create_geocoder_session()
    assert session.headers["User-Agent"] == "route-tracker-tests/1.0"
    assert session.get_adapter("https://nominatim.openstreetmap.org").max_retries.total == 3
