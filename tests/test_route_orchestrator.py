"""Tests for concurrent routing with per-destination fallback."""

from __future__ import annotations

import asyncio

import pytest

from src.data.seed import load_safe_zones
from src.models.evacuation import Coordinates, EvacuationNeeds, RankedDestination, RouteLeg
from src.services.destination_ranker import DestinationRanker, round_half_up
from src.services.maps import RoutingProviderError
from src.services.route_orchestrator import RouteOrchestrator, fallback_summary, route_summary

ORIGIN = Coordinates(lat=27.8006, lng=-97.3964)


class FakeRouting:
    """Answers with a fixed leg, failing or stalling for selected destinations."""

    def __init__(self, fail: set[tuple[float, float]] = frozenset(), stall: set[tuple[float, float]] = frozenset()) -> None:
        self.fail = fail
        self.stall = stall
        self.requests: list[Coordinates] = []

    async def route(self, origin: Coordinates, destination: Coordinates) -> RouteLeg:
        self.requests.append(destination)
        key = (destination.lat, destination.lng)
        if key in self.stall:
            await asyncio.sleep(10)
        if key in self.fail:
            raise RoutingProviderError("No route found")
        return RouteLeg(
            distance_m=5000,
            duration_s=630,
            traffic_delay_s=60,
            departure_time="2026-10-19T10:00:00-05:00",
            arrival_time="2026-10-19T10:10:30-05:00",
            points=[origin, destination],
        )


@pytest.fixture
def ranked() -> list[RankedDestination]:
    return DestinationRanker().rank(ORIGIN, EvacuationNeeds(), load_safe_zones(), count=3)


def _key(r: RankedDestination) -> tuple[float, float]:
    return (r.destination.lat, r.destination.lng)


class TestSummaries:
    def test_fallback_estimate(self) -> None:
        summary = fallback_summary(4.26)
        assert summary.duration_minutes == 9
        assert summary.duration_s is None
        assert summary.distance_m == 4260
        assert summary.distance_km == 4.3
        assert summary.distance_miles == 2.6

    def test_route_summary(self) -> None:
        summary = route_summary(RouteLeg(distance_m=16093, duration_s=630, traffic_delay_s=45))
        assert summary.duration_minutes == 11
        assert summary.distance_km == 16.1
        assert summary.distance_miles == 10.0
        assert summary.traffic_delay_s == 45


class TestRouteOrchestrator:
    async def test_all_routes_succeed(self, ranked: list[RankedDestination]) -> None:
        routes = await RouteOrchestrator(FakeRouting()).get_routes(ORIGIN, ranked)

        assert [r.destination.id for r in routes] == [r.destination.id for r in ranked]
        assert not any(r.fallback for r in routes)
        assert routes[0].summary.duration_s == 630
        assert len(routes[0].points) == 2

    async def test_partial_failure_falls_back_per_destination(self, ranked: list[RankedDestination]) -> None:
        provider = FakeRouting(fail={_key(ranked[0]), _key(ranked[2])})
        routes = await RouteOrchestrator(provider).get_routes(ORIGIN, ranked)

        assert len(routes) == 3
        assert [r.fallback for r in routes] == [True, False, True]
        assert len(provider.requests) == 3, "a failure must not cancel sibling requests"
        for route, target in zip(routes, ranked, strict=True):
            assert route.destination.id == target.destination.id
            assert route.score == target.score
            if route.fallback:
                assert route.summary.duration_minutes == round_half_up(target.distance_km * 2)
                assert route.points == []

    async def test_no_provider_means_all_fallback(self, ranked: list[RankedDestination]) -> None:
        routes = await RouteOrchestrator(None).get_routes(ORIGIN, ranked)
        assert len(routes) == 3
        assert all(r.fallback for r in routes)

    async def test_slow_request_times_out_to_fallback(self, ranked: list[RankedDestination]) -> None:
        provider = FakeRouting(stall={_key(ranked[1])})
        routes = await RouteOrchestrator(provider, timeout_seconds=0.05).get_routes(ORIGIN, ranked)
        assert [r.fallback for r in routes] == [False, True, False]

    async def test_count_limits_requests(self, ranked: list[RankedDestination]) -> None:
        provider = FakeRouting()
        routes = await RouteOrchestrator(provider).get_routes(ORIGIN, ranked, count=1)
        assert len(routes) == 1
        assert len(provider.requests) == 1

    async def test_empty_input(self) -> None:
        assert await RouteOrchestrator(FakeRouting()).get_routes(ORIGIN, []) == []
