"""Concurrent route lookup for ranked evacuation destinations.

One routing request per destination is issued at once and all of them
are awaited; a failure never cancels its siblings.  A destination whose
request fails is answered with a distance-only estimate of two minutes
per kilometre and flagged ``fallback``, so the result always has exactly
one entry per ranked destination, in ranking order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from src.models.evacuation import (
    Coordinates,
    RankedDestination,
    RankedRoute,
    RouteLeg,
    RouteSummary,
)
from src.services.destination_ranker import round_half_up
from src.services.maps import RoutingProvider

logger = structlog.get_logger(__name__)

METERS_PER_MILE = 1609.34
MILES_PER_KM = 0.621371
FALLBACK_MINUTES_PER_KM = 2


def fallback_summary(distance_km: float) -> RouteSummary:
    """Straight-line estimate used when no real route is available."""
    return RouteSummary(
        distance_m=round_half_up(distance_km * 1000),
        distance_km=round(distance_km, 1),
        distance_miles=round(distance_km * MILES_PER_KM, 1),
        duration_s=None,
        duration_minutes=round_half_up(distance_km * FALLBACK_MINUTES_PER_KM),
        traffic_delay_s=0,
    )


def route_summary(leg: RouteLeg) -> RouteSummary:
    return RouteSummary(
        distance_m=leg.distance_m,
        distance_km=round(leg.distance_m / 1000, 1),
        distance_miles=round(leg.distance_m / METERS_PER_MILE, 1),
        duration_s=leg.duration_s,
        duration_minutes=round_half_up(leg.duration_s / 60),
        traffic_delay_s=leg.traffic_delay_s,
        departure_time=leg.departure_time,
        arrival_time=leg.arrival_time,
    )


class RouteOrchestrator:
    """Fans out routing requests and joins them with per-destination fallback.

    Parameters
    ----------
    provider:
        Routing provider.  *None* means every destination gets the
        distance-only estimate.
    timeout_seconds:
        Upper bound on each individual routing request.
    """

    __slots__ = ("_provider", "_timeout_seconds")

    def __init__(self, provider: RoutingProvider | None, *, timeout_seconds: float = 10.0) -> None:
        self._provider = provider
        self._timeout_seconds = timeout_seconds

    async def get_routes(
        self,
        origin: Coordinates,
        ranked: Sequence[RankedDestination],
        count: int | None = None,
    ) -> list[RankedRoute]:
        """Route to the first *count* entries of *ranked* (all when *None*)."""
        targets = list(ranked if count is None else ranked[:count])
        if not targets:
            return []

        if self._provider is None:
            results: list[RouteLeg | BaseException] = [
                RuntimeError("routing provider not configured") for _ in targets
            ]
        else:
            results = await asyncio.gather(
                *(self._route_one(origin, target) for target in targets),
                return_exceptions=True,
            )

        routes: list[RankedRoute] = []
        for target, result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "route_orchestrator.provider_failed",
                    destination_id=target.destination.id,
                    error_type=type(result).__name__,
                )
                routes.append(self._fallback(target))
            else:
                routes.append(
                    RankedRoute(
                        destination=target.destination,
                        distance_km=target.distance_km,
                        score=target.score,
                        summary=route_summary(result),
                        points=result.points,
                    )
                )

        fallback_count = sum(1 for r in routes if r.fallback)
        logger.info(
            "route_orchestrator.routes_ready",
            requested=len(targets),
            fallback=fallback_count,
        )
        return routes

    async def _route_one(self, origin: Coordinates, target: RankedDestination) -> RouteLeg:
        assert self._provider is not None
        return await asyncio.wait_for(
            self._provider.route(origin, target.destination.coordinates),
            timeout=self._timeout_seconds,
        )

    @staticmethod
    def _fallback(target: RankedDestination) -> RankedRoute:
        return RankedRoute(
            destination=target.destination,
            distance_km=target.distance_km,
            score=target.score,
            summary=fallback_summary(target.distance_km),
            fallback=True,
        )
