"""Evacuation destination and route models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.models.enums import DestinationCategory


class Coordinates(BaseModel):
    """A WGS84 point in decimal degrees."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class EvacuationNeeds(BaseModel):
    """Special requirements stated by the evacuee."""

    medical: bool = False
    pets: bool = False
    special_needs: bool = Field(default=False, alias="specialNeeds")

    model_config = {"populate_by_name": True}


class FloodZone(BaseModel):
    """A known flood-prone circle; destinations inside it are penalised."""

    name: str = ""
    lat: float
    lng: float
    radius_km: float


class SafeDestination(BaseModel):
    """A candidate shelter or safe zone."""

    id: str
    name: str
    address: str = ""
    lat: float
    lng: float
    capacity: int = Field(default=0, ge=0)
    category: DestinationCategory = DestinationCategory.OTHER
    facilities: list[str] = Field(default_factory=list)
    description: str = ""

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


class ScoreBreakdown(BaseModel):
    """Individual scoring components for one destination."""

    distance_score: float
    capacity_score: float
    type_score: float
    facility_score: float
    flood_penalty: float
    raw_total: float


class RankedDestination(BaseModel):
    """A destination with its distance from the origin and safety score."""

    destination: SafeDestination
    distance_km: float
    score: int
    breakdown: ScoreBreakdown


class RouteLeg(BaseModel):
    """Route summary returned by a routing provider."""

    distance_m: int
    duration_s: int
    traffic_delay_s: int = 0
    departure_time: str | None = None
    arrival_time: str | None = None
    points: list[Coordinates] = Field(default_factory=list)


class RouteSummary(BaseModel):
    """Unified route summary, real or distance-estimated."""

    distance_m: int
    distance_km: float
    distance_miles: float
    duration_s: int | None = None
    duration_minutes: int
    traffic_delay_s: int = 0
    departure_time: str | None = None
    arrival_time: str | None = None


class RankedRoute(BaseModel):
    """A ranked destination plus its route, or a fallback estimate."""

    destination: SafeDestination
    distance_km: float
    score: int
    summary: RouteSummary
    points: list[Coordinates] = Field(default_factory=list)
    fallback: bool = False


class EvacuationPlan(BaseModel):
    """Response of the evacuation planner."""

    origin: Coordinates
    resolved_address: str | None = None
    catalog_source: str
    routes: list[RankedRoute]

    @property
    def all_fallback(self) -> bool:
        return all(r.fallback for r in self.routes)


class GeocodedLocation(BaseModel):
    """A geocoder hit: the resolved point and the provider's address label."""

    coordinates: Coordinates
    address: str = ""


class NearbyShelter(BaseModel):
    destination: SafeDestination
    distance_km: float


class ShelterSearch(BaseModel):
    """Shelters found around a geocoded search location, nearest first."""

    search_location: str
    location: GeocodedLocation
    radius_meters: int
    source: str
    shelters: list[NearbyShelter]

    @property
    def count(self) -> int:
        return len(self.shelters)
