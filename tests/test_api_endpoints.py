"""Endpoint tests for the SafeHarbor v1 API.

The app under test mounts ``api_router`` on a bare FastAPI instance and
wires real services with fake telephony and map providers onto
``app.state``, so no lifespan, credentials or network are needed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.router import api_router
from src.data.seed import load_flood_zones, load_safe_zones
from src.models.enums import CallMode, ConversationState
from src.models.evacuation import Coordinates, GeocodedLocation
from src.services.cache import CacheManager
from src.services.call_context_store import CachedCallContextStore
from src.services.destination_ranker import DestinationRanker
from src.services.emergency_call import EmergencyCallService
from src.services.evacuation_planner import EvacuationPlanner
from src.services.maps import GeocodingFailed
from src.services.profile_store import ProfileStore
from src.services.route_orchestrator import RouteOrchestrator
from src.services.telephony import CallPlacementRejected, CallRejectionReason, TwilioWebhookVerifier

BASE_URL = "https://safeharbor.example.org"


class FakeTelephony:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self.placed = 0

    async def place_call(self, twiml: str, target_number: str, *, status_callback: str | None = None) -> str:
        if self.error is not None:
            raise self.error
        self.placed += 1
        return f"CA{self.placed:03d}"


class FakeGeocoder:
    async def geocode(self, query: str) -> GeocodedLocation:
        if query in ("78401", "600 Elizabeth St"):
            return GeocodedLocation(coordinates=Coordinates(lat=27.8006, lng=-97.3964), address="Corpus Christi, TX")
        raise GeocodingFailed(query)


@pytest.fixture
def telephony() -> FakeTelephony:
    return FakeTelephony()


@pytest.fixture
def app(tmp_path: Path, telephony: FakeTelephony) -> FastAPI:
    profiles = ProfileStore(tmp_path / "profiles.db")
    asyncio.run(profiles.initialize())
    contexts = CachedCallContextStore(CacheManager(namespace="call:"))

    application = FastAPI(version="test")
    application.include_router(api_router)
    application.state.profiles = profiles
    application.state.call_contexts = contexts
    application.state.emergency_calls = EmergencyCallService(
        profiles=profiles,
        contexts=contexts,
        telephony=telephony,
        default_target_number="+13614259843",
        mode=CallMode.SCRIPTED_IVR,
        public_base_url=BASE_URL,
    )
    application.state.evacuation = EvacuationPlanner(
        ranker=DestinationRanker(load_flood_zones()),
        orchestrator=RouteOrchestrator(None),
        static_catalog=load_safe_zones(),
        geocoder=FakeGeocoder(),
    )
    return application


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c


# -----------------------------------------------------------------------
# Emergency calls
# -----------------------------------------------------------------------


class TestEmergencyEndpoints:
    def test_place_call(self, client: TestClient) -> None:
        resp = client.post(
            "/api/v1/emergency/calls",
            json={"user_id": "user1", "transcribed_message": "There is smoke in the house"},
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["success"] is True
        assert data["call_sid"] == "CA001"
        assert data["emergency_type"] == "fire"
        assert data["mode"] == "scripted-ivr"
        assert data["target_number"] == "+13614259843"

    @pytest.mark.parametrize(
        "body",
        [
            {"user_id": "", "transcribed_message": "help"},
            {"user_id": "user1", "transcribed_message": "   "},
            {},
        ],
    )
    def test_missing_fields(self, client: TestClient, telephony: FakeTelephony, body: dict) -> None:
        resp = client.post("/api/v1/emergency/calls", json=body)
        assert resp.status_code == 400
        assert telephony.placed == 0

    def test_unknown_user(self, client: TestClient) -> None:
        resp = client.post("/api/v1/emergency/calls", json={"user_id": "ghost", "transcribed_message": "help"})
        assert resp.status_code == 404

    def test_unverified_destination(self, client: TestClient, telephony: FakeTelephony) -> None:
        telephony.error = CallPlacementRejected(
            CallRejectionReason.UNVERIFIED_DESTINATION,
            "The number is unverified",
            hint="Verify it in the Twilio console.",
            code=21219,
        )
        resp = client.post("/api/v1/emergency/calls", json={"user_id": "user1", "transcribed_message": "help"})
        assert resp.status_code == 403
        detail = resp.json()["detail"]
        assert detail["reason"] == "unverified-destination"
        assert detail["code"] == 21219
        assert detail["details"] == "Verify it in the Twilio console."

    def test_telephony_not_configured(self, app: FastAPI, client: TestClient) -> None:
        app.state.emergency_calls = EmergencyCallService(
            profiles=app.state.profiles,
            contexts=app.state.call_contexts,
            telephony=None,
            default_target_number="+13614259843",
        )
        resp = client.post("/api/v1/emergency/calls", json={"user_id": "user1", "transcribed_message": "help"})
        assert resp.status_code == 503

    def test_profile_store_down(
        self, app: FastAPI, client: TestClient, telephony: FakeTelephony, tmp_path: Path
    ) -> None:
        app.state.emergency_calls = EmergencyCallService(
            profiles=ProfileStore(tmp_path / "never-initialised.db"),
            contexts=app.state.call_contexts,
            telephony=telephony,
            default_target_number="+13614259843",
        )
        resp = client.post("/api/v1/emergency/calls", json={"user_id": "user1", "transcribed_message": "help"})
        assert resp.status_code == 503
        assert "not placed" in resp.json()["detail"]
        assert telephony.placed == 0

    def test_classify(self, client: TestClient) -> None:
        resp = client.post("/api/v1/emergency/classify", json={"text": "car crash on the bridge"})
        assert resp.status_code == 200
        assert resp.json() == {"emergency_type": "accident"}

    def test_ivr_webhooks(self, client: TestClient) -> None:
        placed = client.post(
            "/api/v1/emergency/calls",
            json={"user_id": "user2", "transcribed_message": "I cannot breathe"},
        ).json()
        sid = placed["call_sid"]

        resp = client.post("/api/v1/emergency/ivr", data={"CallSid": sid, "SpeechResult": "What is her name?"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/xml")
        assert "Jane Smith" in resp.text
        assert "<Gather" in resp.text

        resp = client.post("/api/v1/emergency/ivr/timeout", data={"CallSid": sid})
        assert "<Hangup" in resp.text

        resp = client.post("/api/v1/emergency/call-status", data={"CallSid": sid, "CallStatus": "completed"})
        assert resp.json() == {"call_sid": sid, "status": "completed", "released": True}

    def test_ivr_unknown_call(self, client: TestClient) -> None:
        resp = client.post("/api/v1/emergency/ivr", data={"CallSid": "CA-nope", "Digits": "1"})
        assert resp.status_code == 200
        assert "<Hangup" in resp.text

        resp = client.post("/api/v1/emergency/ivr/timeout", data={"CallSid": "CA-nope"})
        assert resp.status_code == 200
        assert "<Hangup" in resp.text


class TestWebhookSignatures:
    STATUS_URL = f"{BASE_URL}/api/v1/emergency/call-status"

    @pytest.fixture
    def verifier(self, app: FastAPI) -> TwilioWebhookVerifier:
        app.state.webhook_verifier = TwilioWebhookVerifier("test-token", BASE_URL)
        return app.state.webhook_verifier

    def _placed_sid(self, client: TestClient) -> str:
        resp = client.post("/api/v1/emergency/calls", json={"user_id": "user1", "transcribed_message": "fire"})
        return resp.json()["call_sid"]

    def test_unsigned_webhook_rejected(
        self, app: FastAPI, client: TestClient, verifier: TwilioWebhookVerifier
    ) -> None:
        sid = self._placed_sid(client)
        resp = client.post("/api/v1/emergency/ivr", data={"CallSid": sid, "Digits": "9"})
        assert resp.status_code == 403

        resp = client.post(
            "/api/v1/emergency/call-status",
            data={"CallSid": sid, "CallStatus": "completed"},
        )
        assert resp.status_code == 403

        context = asyncio.run(app.state.call_contexts.get(sid))
        assert context is not None
        assert context.state == ConversationState.AWAITING_OPERATOR_INPUT

    def test_signed_webhook_accepted(self, client: TestClient, verifier: TwilioWebhookVerifier) -> None:
        sid = self._placed_sid(client)
        params = {"CallSid": sid, "CallStatus": "completed"}
        signature = verifier.sign(self.STATUS_URL, params)

        resp = client.post(
            "/api/v1/emergency/call-status", data=params, headers={"X-Twilio-Signature": signature}
        )
        assert resp.status_code == 200
        assert resp.json()["released"] is True

    def test_tampered_body_rejected(self, client: TestClient, verifier: TwilioWebhookVerifier) -> None:
        sid = self._placed_sid(client)
        url = f"{BASE_URL}/api/v1/emergency/ivr"
        signature = verifier.sign(url, {"CallSid": sid, "Digits": "1"})

        resp = client.post(
            "/api/v1/emergency/ivr",
            data={"CallSid": sid, "Digits": "9"},
            headers={"X-Twilio-Signature": signature},
        )
        assert resp.status_code == 403

    def test_placement_endpoint_not_affected(self, client: TestClient, verifier: TwilioWebhookVerifier) -> None:
        assert self._placed_sid(client).startswith("CA")


# -----------------------------------------------------------------------
# Profiles
# -----------------------------------------------------------------------


class TestProfileEndpoints:
    def test_get_profile_uses_camel_case(self, client: TestClient) -> None:
        resp = client.get("/api/v1/profiles/user1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "John Peter"
        assert data["emergencyContact"] == "361 555 1110"
        assert data["medicalInfo"] == "Specially Abled"

    def test_unknown_profile(self, client: TestClient) -> None:
        assert client.get("/api/v1/profiles/nobody").status_code == 404

    def test_upsert_profile(self, client: TestClient) -> None:
        resp = client.post(
            "/api/v1/profiles",
            json={"user_id": "u7", "name": "Luis Garza", "emergencyContact": "361 555 0000"},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["age"] == "Unknown"

        fetched = client.get("/api/v1/profiles/u7").json()
        assert fetched["emergencyContact"] == "361 555 0000"

    def test_upsert_requires_name(self, client: TestClient) -> None:
        assert client.post("/api/v1/profiles", json={"user_id": "u8"}).status_code == 422


# -----------------------------------------------------------------------
# Evacuation
# -----------------------------------------------------------------------


class TestEvacuationEndpoints:
    def test_routes_from_coordinates(self, client: TestClient) -> None:
        resp = client.post("/api/v1/evacuation/routes", json={"origin": {"lat": 27.8006, "lng": -97.3964}})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["catalog_source"] == "static"
        assert data["all_fallback"] is True
        assert len(data["routes"]) == 3
        assert data["routes"][0]["destination"]["name"] == "American Bank Center"
        assert data["routes"][0]["summary"]["duration_minutes"] >= 1

    def test_routes_from_address(self, client: TestClient) -> None:
        resp = client.post(
            "/api/v1/evacuation/routes",
            json={"address": "600 Elizabeth St", "needs": {"medical": True}, "count": 2},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["resolved_address"] == "Corpus Christi, TX"
        assert len(data["routes"]) == 2

    def test_routes_geocode_failure(self, client: TestClient) -> None:
        resp = client.post("/api/v1/evacuation/routes", json={"address": "Nowhere Lane"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "Could not geocode location: Nowhere Lane"

    def test_routes_need_origin_or_address(self, client: TestClient) -> None:
        assert client.post("/api/v1/evacuation/routes", json={}).status_code == 422
        assert client.post("/api/v1/evacuation/routes", json={"address": "  "}).status_code == 422

    def test_routes_count_bounds(self, client: TestClient) -> None:
        body = {"origin": {"lat": 27.8, "lng": -97.4}, "count": 11}
        assert client.post("/api/v1/evacuation/routes", json=body).status_code == 422

    def test_safe_zones(self, client: TestClient) -> None:
        resp = client.get("/api/v1/evacuation/safe-zones", params={"lat": 27.8006, "lng": -97.3964, "count": 4})
        assert resp.status_code == 200
        zones = resp.json()["safe_zones"]
        assert len(zones) == 4
        assert "breakdown" in zones[0]

    def test_shelters_by_zip(self, client: TestClient) -> None:
        resp = client.get("/api/v1/evacuation/shelters/78401", params={"radius": 2000})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["source"] == "static"
        assert data["count"] == 2
        assert data["radius_meters"] == 2000

    @pytest.mark.parametrize("zip_code", ["7840", "abcde", "784011"])
    def test_shelters_invalid_zip(self, client: TestClient, zip_code: str) -> None:
        assert client.get(f"/api/v1/evacuation/shelters/{zip_code}").status_code == 422

    def test_shelters_radius_bounds(self, client: TestClient) -> None:
        assert client.get("/api/v1/evacuation/shelters/78401", params={"radius": 500}).status_code == 422

    def test_shelters_unknown_zip(self, client: TestClient) -> None:
        assert client.get("/api/v1/evacuation/shelters/99999").status_code == 422

    def test_flood_zones(self, client: TestClient) -> None:
        resp = client.get("/api/v1/evacuation/flood-zones")
        assert resp.status_code == 200
        assert {z["name"] for z in resp.json()["flood_zones"]} == {"Oso Bay", "Laguna Madre", "Port area"}


# -----------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------


class TestHealthEndpoints:
    def test_liveness(self, client: TestClient) -> None:
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_readiness(self, client: TestClient) -> None:
        data = client.get("/api/v1/health/ready").json()
        assert data["status"] == "ready"
        assert data["checks"]["profile_store"] == "ok"
        assert data["checks"]["telephony"] == "ok (scripted-ivr)"

    def test_readiness_degraded_without_telephony(self, app: FastAPI, client: TestClient) -> None:
        app.state.emergency_calls = EmergencyCallService(
            profiles=app.state.profiles,
            contexts=app.state.call_contexts,
            telephony=None,
            default_target_number="+13614259843",
        )
        data = client.get("/api/v1/health/ready").json()
        assert data["status"] == "degraded"
        assert data["checks"]["telephony"] == "not_configured"
