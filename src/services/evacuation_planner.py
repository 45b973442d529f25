"""Evacuation planning: origin resolution, catalog choice, ranking, routing.

The planner ties the evacuation collaborators together:

1. Resolve the origin (coordinates as given, or geocode an address/ZIP).
2. Pick the destination catalog: live places results when a provider is
   configured and returns something, the bundled static catalog otherwise.
3. Rank the catalog with :class:`DestinationRanker`.
4. Route to the shortlist with :class:`RouteOrchestrator`.

Only a geocoding failure is surfaced to the caller; every other vendor
problem degrades to the static catalog or to fallback route estimates.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from src.models.evacuation import (
    Coordinates,
    EvacuationNeeds,
    EvacuationPlan,
    GeocodedLocation,
    NearbyShelter,
    RankedDestination,
    SafeDestination,
    ShelterSearch,
)
from src.services.destination_ranker import DestinationRanker, haversine_km
from src.services.maps import Geocoder, GeocodingFailed, PlacesProviderError, ShelterProvider
from src.services.route_orchestrator import RouteOrchestrator

logger = structlog.get_logger(__name__)

CATALOG_PLACES = "places"
CATALOG_STATIC = "static"


class EvacuationPlanner:
    """Builds ranked, routed evacuation plans.

    Parameters
    ----------
    ranker, orchestrator:
        Scoring and routing collaborators.
    static_catalog:
        Bundled destinations used whenever live places are unavailable.
    geocoder:
        Resolves addresses and ZIP codes; *None* disables address origins.
    shelters:
        Live places provider; *None* means always use the static catalog.
    """

    __slots__ = (
        "_default_count",
        "_geocoder",
        "_orchestrator",
        "_ranker",
        "_search_max_results",
        "_search_radius_m",
        "_shelters",
        "_static_catalog",
    )

    def __init__(
        self,
        *,
        ranker: DestinationRanker,
        orchestrator: RouteOrchestrator,
        static_catalog: Sequence[SafeDestination],
        geocoder: Geocoder | None = None,
        shelters: ShelterProvider | None = None,
        search_radius_m: int = 10_000,
        search_max_results: int = 10,
        default_count: int = 3,
    ) -> None:
        if not static_catalog:
            raise ValueError("static_catalog must not be empty")
        self._ranker = ranker
        self._orchestrator = orchestrator
        self._static_catalog = list(static_catalog)
        self._geocoder = geocoder
        self._shelters = shelters
        self._search_radius_m = search_radius_m
        self._search_max_results = search_max_results
        self._default_count = default_count

    @property
    def static_catalog(self) -> list[SafeDestination]:
        return list(self._static_catalog)

    @property
    def ranker(self) -> DestinationRanker:
        return self._ranker

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    async def geocode(self, query: str) -> GeocodedLocation:
        if self._geocoder is None:
            raise GeocodingFailed(query, "geocoder not configured")
        return await self._geocoder.geocode(query)

    async def resolve_origin(
        self, origin: Coordinates | None = None, address: str | None = None
    ) -> tuple[Coordinates, str | None]:
        if origin is not None:
            return origin, None
        if not address:
            raise ValueError("Either origin coordinates or an address is required")
        location = await self.geocode(address)
        return location.coordinates, location.address

    async def load_catalog(self, origin: Coordinates) -> tuple[list[SafeDestination], str]:
        """Return ``(catalog, source)`` for *origin*."""
        if self._shelters is not None:
            try:
                found = await self._shelters.find_nearby(
                    origin, self._search_radius_m, self._search_max_results
                )
            except PlacesProviderError:
                logger.warning("evacuation_planner.places_failed_using_static")
            else:
                if found:
                    return found, CATALOG_PLACES
                logger.info("evacuation_planner.places_empty_using_static")
        return list(self._static_catalog), CATALOG_STATIC

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def safe_zones(
        self,
        origin: Coordinates,
        needs: EvacuationNeeds | None = None,
        count: int | None = None,
    ) -> list[RankedDestination]:
        """Rank the static catalog for *origin* without routing."""
        return self._ranker.rank(
            origin, needs or EvacuationNeeds(), self._static_catalog, count or self._default_count
        )

    async def plan(
        self,
        *,
        origin: Coordinates | None = None,
        address: str | None = None,
        needs: EvacuationNeeds | None = None,
        count: int | None = None,
    ) -> EvacuationPlan:
        """Resolve, rank and route.

        Raises
        ------
        GeocodingFailed
            *address* was given and could not be resolved.
        """
        point, resolved_address = await self.resolve_origin(origin, address)
        catalog, source = await self.load_catalog(point)
        wanted = count or self._default_count

        ranked = self._ranker.rank(point, needs or EvacuationNeeds(), catalog, wanted)
        routes = await self._orchestrator.get_routes(point, ranked, wanted)

        plan = EvacuationPlan(
            origin=point,
            resolved_address=resolved_address,
            catalog_source=source,
            routes=routes,
        )
        logger.info(
            "evacuation_planner.planned",
            catalog_source=source,
            routes=len(routes),
            all_fallback=plan.all_fallback,
        )
        return plan

    async def find_shelters(
        self,
        query: str,
        *,
        radius_m: int | None = None,
        max_results: int | None = None,
    ) -> ShelterSearch:
        """Shelters near a geocoded address or ZIP code, nearest first.

        Without a places provider, or when it fails, the static catalog is
        filtered to the search radius instead.
        """
        radius = radius_m or self._search_radius_m
        limit = max_results or self._search_max_results
        location = await self.geocode(query)
        center = location.coordinates

        candidates: Sequence[SafeDestination] = self._static_catalog
        source = CATALOG_STATIC
        if self._shelters is not None:
            try:
                candidates = await self._shelters.find_nearby(center, radius, limit)
                source = CATALOG_PLACES
            except PlacesProviderError:
                logger.warning("evacuation_planner.shelter_search_using_static", query=query)

        nearby = [
            NearbyShelter(
                destination=d,
                distance_km=haversine_km(center.lat, center.lng, d.lat, d.lng),
            )
            for d in candidates
        ]
        if source == CATALOG_STATIC:
            nearby = [s for s in nearby if s.distance_km * 1000 <= radius]
        nearby.sort(key=lambda s: s.distance_km)

        return ShelterSearch(
            search_location=query,
            location=location,
            radius_meters=radius,
            source=source,
            shelters=nearby[:limit],
        )
