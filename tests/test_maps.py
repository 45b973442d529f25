"""Tests for the TomTom and Google Places vendor clients.

Vendor HTTP is replaced with ``httpx.MockTransport``.  Failures used here
are non-transient (4xx) so tenacity does not back off between attempts.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from src.models.enums import DestinationCategory
from src.models.evacuation import Coordinates
from src.services.cache import CacheManager
from src.services.maps import (
    GeocodingFailed,
    GooglePlacesShelterProvider,
    PlacesProviderError,
    RoutingProviderError,
    TomTomGeocoder,
    TomTomRoutingProvider,
)

ORIGIN = Coordinates(lat=27.8006, lng=-97.3964)
DEST = Coordinates(lat=27.8052, lng=-97.3972)

TOMTOM_ROUTE = {
    "routes": [
        {
            "summary": {
                "lengthInMeters": 1234,
                "travelTimeInSeconds": 300,
                "trafficDelayInSeconds": 20,
                "departureTime": "2026-10-19T10:00:00-05:00",
                "arrivalTime": "2026-10-19T10:05:00-05:00",
            },
            "legs": [
                {
                    "points": [
                        {"latitude": 27.8006, "longitude": -97.3964},
                        {"latitude": 27.8052, "longitude": -97.3972},
                    ]
                }
            ],
        }
    ]
}


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# -----------------------------------------------------------------------
# Routing
# -----------------------------------------------------------------------


class TestTomTomRouting:
    async def test_parses_route(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=TOMTOM_ROUTE)

        provider = TomTomRoutingProvider("tt-key", client=_client(handler))
        leg = await provider.route(ORIGIN, DEST)

        assert leg.distance_m == 1234
        assert leg.duration_s == 300
        assert leg.traffic_delay_s == 20
        assert leg.points[-1] == DEST
        params = seen[0].url.params
        assert params["key"] == "tt-key"
        assert params["traffic"] == "true"
        assert "27.8006,-97.3964:27.8052,-97.3972" in seen[0].url.path

    async def test_empty_routes(self) -> None:
        provider = TomTomRoutingProvider("k", client=_client(lambda r: httpx.Response(200, json={"routes": []})))
        with pytest.raises(RoutingProviderError, match="No route found"):
            await provider.route(ORIGIN, DEST)

    async def test_client_error(self) -> None:
        provider = TomTomRoutingProvider("k", client=_client(lambda r: httpx.Response(403, json={})))
        with pytest.raises(RoutingProviderError):
            await provider.route(ORIGIN, DEST)

    async def test_malformed_summary(self) -> None:
        body = {"routes": [{"summary": {"lengthInMeters": 1}}]}
        provider = TomTomRoutingProvider("k", client=_client(lambda r: httpx.Response(200, json=body)))
        with pytest.raises(RoutingProviderError):
            await provider.route(ORIGIN, DEST)

    def test_requires_key(self) -> None:
        with pytest.raises(ValueError):
            TomTomRoutingProvider("")


# -----------------------------------------------------------------------
# Geocoding
# -----------------------------------------------------------------------


class TestTomTomGeocoder:
    @staticmethod
    def _hit(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "results": [
                    {
                        "position": {"lat": 27.7126, "lon": -97.3250},
                        "address": {"freeformAddress": "Corpus Christi, TX 78412"},
                    }
                ]
            },
        )

    async def test_geocode(self) -> None:
        geocoder = TomTomGeocoder("k", client=_client(self._hit))
        location = await geocoder.geocode("78412")
        assert location.coordinates == Coordinates(lat=27.7126, lng=-97.3250)
        assert location.address == "Corpus Christi, TX 78412"

    async def test_hits_are_cached(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return self._hit(request)

        geocoder = TomTomGeocoder("k", cache=CacheManager(namespace="geo:"), client=_client(handler))
        first = await geocoder.geocode("78412")
        second = await geocoder.geocode("  78412 ")
        assert first == second
        assert calls == 1

    async def test_no_results(self) -> None:
        geocoder = TomTomGeocoder("k", client=_client(lambda r: httpx.Response(200, json={"results": []})))
        with pytest.raises(GeocodingFailed) as excinfo:
            await geocoder.geocode("nowhere at all")
        assert str(excinfo.value) == "Could not geocode location: nowhere at all"

    async def test_empty_query(self) -> None:
        geocoder = TomTomGeocoder("k", client=_client(self._hit))
        with pytest.raises(GeocodingFailed):
            await geocoder.geocode("   ")

    async def test_vendor_rejection(self) -> None:
        geocoder = TomTomGeocoder("k", client=_client(lambda r: httpx.Response(401, json={})))
        with pytest.raises(GeocodingFailed) as excinfo:
            await geocoder.geocode("78412")
        assert excinfo.value.reason == "provider unavailable"


# -----------------------------------------------------------------------
# Places
# -----------------------------------------------------------------------


class TestGooglePlaces:
    async def test_normalises_results(self) -> None:
        body = {
            "status": "OK",
            "results": [
                {
                    "place_id": "p1",
                    "name": "Salvation Army Shelter",
                    "vicinity": "1402 Mestina St",
                    "geometry": {"location": {"lat": 27.79, "lng": -97.40}},
                },
                {
                    "place_id": "p2",
                    "name": "Community Center",
                    "geometry": {"location": {"lat": 27.78, "lng": -97.41}},
                },
                {"place_id": "broken", "name": "No geometry"},
            ],
        }
        provider = GooglePlacesShelterProvider("g", client=_client(lambda r: httpx.Response(200, json=body)))
        shelters = await provider.find_nearby(ORIGIN, 10_000, 10)

        assert [s.id for s in shelters] == ["p1", "p2"]
        assert shelters[0].category == DestinationCategory.GENERAL_SHELTER
        assert shelters[1].category == DestinationCategory.OTHER
        assert shelters[0].address == "1402 Mestina St"
        assert all(s.capacity == 0 and s.facilities == [] for s in shelters)

    async def test_max_results(self) -> None:
        place = {"place_id": "p", "name": "Shelter", "geometry": {"location": {"lat": 27.7, "lng": -97.4}}}
        body = {"status": "OK", "results": [place] * 5}
        provider = GooglePlacesShelterProvider("g", client=_client(lambda r: httpx.Response(200, json=body)))
        assert len(await provider.find_nearby(ORIGIN, 5000, 2)) == 2

    async def test_zero_results(self) -> None:
        body = {"status": "ZERO_RESULTS", "results": []}
        provider = GooglePlacesShelterProvider("g", client=_client(lambda r: httpx.Response(200, json=body)))
        assert await provider.find_nearby(ORIGIN, 5000, 10) == []

    async def test_denied_status(self) -> None:
        body = {"status": "REQUEST_DENIED", "results": []}
        provider = GooglePlacesShelterProvider("g", client=_client(lambda r: httpx.Response(200, json=body)))
        with pytest.raises(PlacesProviderError):
            await provider.find_nearby(ORIGIN, 5000, 10)
