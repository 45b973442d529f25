"""Safety scoring and ranking of evacuation destinations.

Each candidate gets a weighted score from four components, halved when
the destination sits inside a known flood-zone circle::

    distance_score = 100 / (d_km + 1)   if d_km < 50 else 10
    capacity_score = capacity / 3000 * 100          (uncapped)
    type_score     = 100 medical facility for medical needs,
                      80 pet friendly for pets,
                      90 special needs support for special needs,
                      50 otherwise
    facility_score = min(tag_count / 4 * 100, 100)

    total = (0.3 distance + 0.2 capacity + 0.3 type + 0.2 facility) * penalty

``penalty`` is 0.5 inside a flood zone and 1.0 elsewhere.  The total is
rounded half-up to an integer.  Only the capacity component can push it
above 100, which is intended: very large shelters legitimately outrank.
The facility component departs from the plain ``tag_count / 4 * 100`` by
saturating at 100; destinations with four tags or fewer, which covers the
bundled catalog and normalised places results, score identically.
Ranking is a stable sort on the score, so equal scores keep catalog order.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

import structlog

from src.models.enums import DestinationCategory
from src.models.evacuation import (
    Coordinates,
    EvacuationNeeds,
    FloodZone,
    RankedDestination,
    SafeDestination,
    ScoreBreakdown,
)

logger = structlog.get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

DISTANCE_CUTOFF_KM = 50.0
DISTANT_SCORE = 10.0
REFERENCE_CAPACITY = 3000
FACILITY_TAGS_FOR_FULL_SCORE = 4
FLOOD_PENALTY = 0.5

WEIGHT_DISTANCE = 0.3
WEIGHT_CAPACITY = 0.2
WEIGHT_TYPE = 0.3
WEIGHT_FACILITY = 0.2


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``round`` is banker's)."""
    return math.floor(value + 0.5)


def in_flood_zone(lat: float, lng: float, flood_zones: Iterable[FloodZone]) -> bool:
    return any(haversine_km(lat, lng, fz.lat, fz.lng) < fz.radius_km for fz in flood_zones)


def _type_score(destination: SafeDestination, needs: EvacuationNeeds) -> float:
    if needs.medical and destination.category == DestinationCategory.MEDICAL_FACILITY:
        return 100.0
    if needs.pets and "pet_friendly" in destination.facilities:
        return 80.0
    if needs.special_needs and "special_needs" in destination.facilities:
        return 90.0
    return 50.0


def score_destination(
    destination: SafeDestination,
    distance_km: float,
    needs: EvacuationNeeds,
    flood_zones: Iterable[FloodZone] = (),
) -> ScoreBreakdown:
    distance_score = (1 / (distance_km + 1)) * 100 if distance_km < DISTANCE_CUTOFF_KM else DISTANT_SCORE
    capacity_score = destination.capacity / REFERENCE_CAPACITY * 100
    type_score = _type_score(destination, needs)
    facility_score = min(len(destination.facilities) / FACILITY_TAGS_FOR_FULL_SCORE * 100, 100.0)
    penalty = FLOOD_PENALTY if in_flood_zone(destination.lat, destination.lng, flood_zones) else 1.0

    raw_total = (
        distance_score * WEIGHT_DISTANCE
        + capacity_score * WEIGHT_CAPACITY
        + type_score * WEIGHT_TYPE
        + facility_score * WEIGHT_FACILITY
    ) * penalty

    return ScoreBreakdown(
        distance_score=distance_score,
        capacity_score=capacity_score,
        type_score=type_score,
        facility_score=facility_score,
        flood_penalty=penalty,
        raw_total=raw_total,
    )


class DestinationRanker:
    """Orders a destination catalog by safety score for one origin.

    Parameters
    ----------
    flood_zones:
        Circles whose interior halves a destination's score.
    """

    __slots__ = ("_flood_zones",)

    def __init__(self, flood_zones: Sequence[FloodZone] = ()) -> None:
        self._flood_zones = tuple(flood_zones)

    @property
    def flood_zones(self) -> tuple[FloodZone, ...]:
        return self._flood_zones

    def rank(
        self,
        origin: Coordinates,
        needs: EvacuationNeeds,
        catalog: Sequence[SafeDestination],
        count: int = 3,
    ) -> list[RankedDestination]:
        """Score every destination in *catalog* and return the best *count*."""
        if count < 1:
            return []

        ranked: list[RankedDestination] = []
        for destination in catalog:
            distance_km = haversine_km(origin.lat, origin.lng, destination.lat, destination.lng)
            breakdown = score_destination(destination, distance_km, needs, self._flood_zones)
            ranked.append(
                RankedDestination(
                    destination=destination,
                    distance_km=distance_km,
                    score=round_half_up(breakdown.raw_total),
                    breakdown=breakdown,
                )
            )

        ranked.sort(key=lambda r: r.score, reverse=True)
        shortlist = ranked[:count]
        logger.debug(
            "destination_ranker.ranked",
            candidates=len(catalog),
            returned=len(shortlist),
            top=shortlist[0].destination.id if shortlist else None,
        )
        return shortlist
