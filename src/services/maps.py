"""Map vendor clients: TomTom routing and geocoding, Google Places shelters.

All three speak to their vendor through an ``httpx.AsyncClient`` and retry
transient failures (transport errors, HTTP 429 and 5xx) with tenacity
before giving up.  A failure that survives the retries is raised as a
typed error; deciding whether a fallback applies is left to the caller.

API keys travel as query parameters, so URLs and raw exception strings
are never logged here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.data.seed import CORPUS_CHRISTI_CENTER
from src.models.enums import DestinationCategory
from src.models.evacuation import (
    Coordinates,
    GeocodedLocation,
    RouteLeg,
    SafeDestination,
)

if TYPE_CHECKING:
    from src.services.cache import CacheManager

logger = structlog.get_logger(__name__)

TOMTOM_ROUTING_URL = "https://api.tomtom.com/routing/1/calculateRoute/{path}/json"
TOMTOM_GEOCODE_URL = "https://api.tomtom.com/search/2/geocode/{query}.json"
PLACES_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"

SHELTER_KEYWORD = "emergency shelter evacuation"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class MapsProviderError(Exception):
    """A map vendor request failed after retries."""


class RoutingProviderError(MapsProviderError):
    """No route could be obtained for one origin/destination pair."""


class PlacesProviderError(MapsProviderError):
    """The places search failed."""


class GeocodingFailed(MapsProviderError):
    """An address or ZIP code could not be resolved to coordinates."""

    def __init__(self, query: str, reason: str = "not found") -> None:
        super().__init__(f"Could not geocode location: {query}")
        self.query = query
        self.reason = reason


class _TransientHTTPError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"transient HTTP {status_code}")
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Provider protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class RoutingProvider(Protocol):
    async def route(self, origin: Coordinates, destination: Coordinates) -> RouteLeg: ...


@runtime_checkable
class Geocoder(Protocol):
    async def geocode(self, query: str) -> GeocodedLocation: ...


@runtime_checkable
class ShelterProvider(Protocol):
    async def find_nearby(
        self, origin: Coordinates, radius_m: int, max_results: int
    ) -> list[SafeDestination]: ...


# ---------------------------------------------------------------------------
# Shared HTTP helper
# ---------------------------------------------------------------------------


@retry(
    retry=retry_if_exception_type((httpx.TransportError, _TransientHTTPError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)
async def _get_json(client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> Any:
    response = await client.get(url, params=params)
    if response.status_code == 429 or response.status_code >= 500:
        raise _TransientHTTPError(response.status_code)
    response.raise_for_status()
    return response.json()


class _VendorClient:
    """Owns an ``httpx.AsyncClient`` unless one is injected."""

    def __init__(self, api_key: str, *, client: httpx.AsyncClient | None, timeout: float) -> None:
        if not api_key:
            raise ValueError(f"{type(self).__name__} requires an API key")
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": "SafeHarbor/1.0"},
            follow_redirects=True,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _fetch(self, url: str, params: dict[str, Any], *, vendor: str) -> Any:
        try:
            return await _get_json(self._client, url, {**params, "key": self._api_key})
        except _TransientHTTPError as exc:
            logger.warning("maps.vendor_unavailable", vendor=vendor, status=exc.status_code)
            raise
        except httpx.HTTPStatusError as exc:
            logger.warning("maps.vendor_rejected", vendor=vendor, status=exc.response.status_code)
            raise
        except httpx.HTTPError as exc:
            logger.warning("maps.vendor_unreachable", vendor=vendor, error_type=type(exc).__name__)
            raise


# ---------------------------------------------------------------------------
# TomTom routing
# ---------------------------------------------------------------------------


class TomTomRoutingProvider(_VendorClient):
    """Traffic-aware driving routes departing now."""

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(api_key, client=client, timeout=timeout)

    async def route(self, origin: Coordinates, destination: Coordinates) -> RouteLeg:
        path = f"{origin.lat},{origin.lng}:{destination.lat},{destination.lng}"
        params = {
            "traffic": "true",
            "routeType": "fastest",
            "travelMode": "car",
            "avoid": "unpavedRoads",
            "departAt": "now",
            "computeTravelTimeFor": "all",
            "sectionType": "traffic",
        }
        try:
            data = await self._fetch(TOMTOM_ROUTING_URL.format(path=path), params, vendor="tomtom_routing")
        except (httpx.HTTPError, _TransientHTTPError, ValueError) as exc:
            raise RoutingProviderError("TomTom routing request failed") from exc

        routes = data.get("routes") if isinstance(data, dict) else None
        if not routes:
            raise RoutingProviderError("No route found")
        return _parse_tomtom_route(routes[0])


def _parse_tomtom_route(route: dict[str, Any]) -> RouteLeg:
    try:
        summary = route["summary"]
        points = [
            Coordinates(lat=point["latitude"], lng=point["longitude"])
            for leg in route.get("legs", [])
            for point in leg.get("points", [])
        ]
        return RouteLeg(
            distance_m=int(summary["lengthInMeters"]),
            duration_s=int(summary["travelTimeInSeconds"]),
            traffic_delay_s=int(summary.get("trafficDelayInSeconds", 0) or 0),
            departure_time=summary.get("departureTime"),
            arrival_time=summary.get("arrivalTime"),
            points=points,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise RoutingProviderError("Malformed route in TomTom response") from exc


# ---------------------------------------------------------------------------
# TomTom geocoding
# ---------------------------------------------------------------------------


class TomTomGeocoder(_VendorClient):
    """US address / ZIP geocoder biased toward Corpus Christi.

    Hits are cached through an optional :class:`CacheManager`; misses are
    not cached so a transient vendor failure is not remembered.
    """

    def __init__(
        self,
        api_key: str,
        *,
        cache: CacheManager | None = None,
        cache_ttl_seconds: int = 86_400,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(api_key, client=client, timeout=timeout)
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds

    async def geocode(self, query: str) -> GeocodedLocation:
        normalised = " ".join(query.split())
        if not normalised:
            raise GeocodingFailed(query, "empty query")

        if self._cache is None:
            hit = await self._lookup(normalised)
        else:
            hit = await self._cache.get_or_set(
                normalised.lower(),
                lambda: self._lookup(normalised),
                ttl_seconds=self._cache_ttl_seconds,
            )

        if hit is None:
            raise GeocodingFailed(query)
        return GeocodedLocation.model_validate(hit)

    async def _lookup(self, query: str) -> dict[str, Any] | None:
        lat, lng = CORPUS_CHRISTI_CENTER
        params = {"limit": 1, "countrySet": "US", "lat": lat, "lon": lng}
        try:
            data = await self._fetch(
                TOMTOM_GEOCODE_URL.format(query=quote(query, safe="")), params, vendor="tomtom_geocode"
            )
        except (httpx.HTTPError, _TransientHTTPError, ValueError) as exc:
            raise GeocodingFailed(query, "provider unavailable") from exc

        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            logger.info("maps.geocode_no_match", query_length=len(query))
            return None

        first = results[0]
        position = first.get("position") or {}
        if "lat" not in position or "lon" not in position:
            return None
        return {
            "coordinates": {"lat": position["lat"], "lng": position["lon"]},
            "address": (first.get("address") or {}).get("freeformAddress", query),
        }


# ---------------------------------------------------------------------------
# Google Places shelters
# ---------------------------------------------------------------------------


class GooglePlacesShelterProvider(_VendorClient):
    """Nearby shelter search, normalised to :class:`SafeDestination`.

    Places carries no capacity or facility data, so every result gets
    capacity 0 and an empty tag set.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(api_key, client=client, timeout=timeout)

    async def find_nearby(
        self, origin: Coordinates, radius_m: int, max_results: int
    ) -> list[SafeDestination]:
        params = {
            "location": f"{origin.lat},{origin.lng}",
            "radius": radius_m,
            "keyword": SHELTER_KEYWORD,
        }
        try:
            data = await self._fetch(PLACES_NEARBY_URL, params, vendor="google_places")
        except (httpx.HTTPError, _TransientHTTPError, ValueError) as exc:
            raise PlacesProviderError("Places search failed") from exc

        status = data.get("status", "UNKNOWN_ERROR") if isinstance(data, dict) else "UNKNOWN_ERROR"
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            logger.warning("maps.places_status", status=status)
            raise PlacesProviderError(f"Places search returned {status}")

        shelters: list[SafeDestination] = []
        for place in data.get("results", [])[:max_results]:
            destination = _place_to_destination(place)
            if destination is not None:
                shelters.append(destination)
        logger.info("maps.places_found", count=len(shelters), radius_m=radius_m)
        return shelters


def _place_to_destination(place: dict[str, Any]) -> SafeDestination | None:
    location = (place.get("geometry") or {}).get("location") or {}
    if "lat" not in location or "lng" not in location or not place.get("name"):
        return None
    name = place["name"]
    category = (
        DestinationCategory.GENERAL_SHELTER if "shelter" in name.lower() else DestinationCategory.OTHER
    )
    return SafeDestination(
        id=place.get("place_id") or name,
        name=name,
        address=place.get("vicinity") or place.get("formatted_address") or "",
        lat=location["lat"],
        lng=location["lng"],
        capacity=0,
        category=category,
        facilities=[],
    )
