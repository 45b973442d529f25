"""Evacuation planning endpoints.

Routes are always answered with a non-empty list or an explicit error:
vendor outages degrade to the bundled shelter catalog and distance-based
travel estimates, and only an unresolvable address is reported back.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field, model_validator

from src.models.evacuation import (
    Coordinates,
    EvacuationNeeds,
    FloodZone,
    RankedDestination,
    RankedRoute,
)
from src.services.evacuation_planner import EvacuationPlanner
from src.services.maps import GeocodingFailed

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/evacuation", tags=["evacuation"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class RouteRequest(BaseModel):
    origin: Coordinates | None = None
    address: str | None = Field(default=None, max_length=300, description="Street address or ZIP code")
    needs: EvacuationNeeds = Field(default_factory=EvacuationNeeds)
    count: int | None = Field(default=None, ge=1, le=10)

    @model_validator(mode="after")
    def _origin_or_address(self) -> RouteRequest:
        if self.origin is None and not (self.address or "").strip():
            raise ValueError("Provide either origin coordinates or an address")
        return self


class RouteResponse(BaseModel):
    origin: Coordinates
    resolved_address: str | None = None
    catalog_source: str
    all_fallback: bool
    routes: list[RankedRoute]


class SafeZoneResponse(BaseModel):
    origin: Coordinates
    safe_zones: list[RankedDestination]


class ShelterItem(BaseModel):
    id: str
    name: str
    address: str
    location: Coordinates
    distance_km: float


class ShelterSearchResponse(BaseModel):
    search_location: str
    resolved_address: str
    location: Coordinates
    radius_meters: int
    source: str
    shelters: list[ShelterItem]
    count: int


class FloodZoneResponse(BaseModel):
    flood_zones: list[FloodZone]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _planner(request: Request) -> EvacuationPlanner:
    planner = getattr(request.app.state, "evacuation", None)
    if planner is None:
        raise HTTPException(status_code=503, detail="Evacuation planner not available")
    return planner


def _not_geocoded(exc: GeocodingFailed) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"error": f"Could not geocode location: {exc.query}", "reason": exc.reason},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/routes", response_model=RouteResponse)
async def evacuation_routes(body: RouteRequest, request: Request) -> RouteResponse:
    """Rank safe destinations for the origin and route to the best of them."""
    planner = _planner(request)
    try:
        plan = await planner.plan(
            origin=body.origin,
            address=body.address,
            needs=body.needs,
            count=body.count,
        )
    except GeocodingFailed as exc:
        raise _not_geocoded(exc) from exc

    if not plan.routes:
        raise HTTPException(status_code=404, detail="No safe destinations available for this origin.")

    return RouteResponse(
        origin=plan.origin,
        resolved_address=plan.resolved_address,
        catalog_source=plan.catalog_source,
        all_fallback=plan.all_fallback,
        routes=plan.routes,
    )


@router.get("/safe-zones", response_model=SafeZoneResponse)
async def safe_zones(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    medical: bool = False,
    pets: bool = False,
    special_needs: bool = False,
    count: int = Query(3, ge=1, le=10),
) -> SafeZoneResponse:
    """Ranked shortlist from the bundled catalog, without routes."""
    origin = Coordinates(lat=lat, lng=lng)
    needs = EvacuationNeeds(medical=medical, pets=pets, special_needs=special_needs)
    return SafeZoneResponse(origin=origin, safe_zones=_planner(request).safe_zones(origin, needs, count))


@router.get("/shelters/{zip_code}", response_model=ShelterSearchResponse)
async def shelters_near_zip(
    request: Request,
    zip_code: str = Path(..., pattern=r"^\d{5}$", description="5-digit US ZIP code"),
    radius: int = Query(10_000, ge=1000, le=50_000, description="Search radius in meters"),
    max_results: int = Query(10, ge=1, le=20),
) -> ShelterSearchResponse:
    """Shelters near a ZIP code, nearest first."""
    planner = _planner(request)
    try:
        search = await planner.find_shelters(zip_code, radius_m=radius, max_results=max_results)
    except GeocodingFailed as exc:
        raise _not_geocoded(exc) from exc

    return ShelterSearchResponse(
        search_location=search.search_location,
        resolved_address=search.location.address,
        location=search.location.coordinates,
        radius_meters=search.radius_meters,
        source=search.source,
        shelters=[
            ShelterItem(
                id=s.destination.id,
                name=s.destination.name,
                address=s.destination.address,
                location=s.destination.coordinates,
                distance_km=round(s.distance_km, 2),
            )
            for s in search.shelters
        ],
        count=search.count,
    )


@router.get("/flood-zones", response_model=FloodZoneResponse)
async def flood_zones(request: Request) -> FloodZoneResponse:
    """Flood-prone circles that halve a destination's safety score."""
    return FloodZoneResponse(flood_zones=list(_planner(request).ranker.flood_zones))
