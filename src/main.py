"""SafeHarbor FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
wires the SOS call and evacuation services onto ``app.state``.  This is
the only module that reads :data:`config.settings.settings`; every
service receives its configuration through its constructor.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from config.settings import settings
from src.api.router import api_router
from src.data.seed import load_flood_zones, load_safe_zones
from src.middleware.rate_limit import RateLimitMiddleware
from src.models.enums import CallMode
from src.services.cache import CacheManager
from src.services.call_context_store import CachedCallContextStore
from src.services.call_script import CallScriptBuilder
from src.services.conversation import ConversationStateMachine
from src.services.destination_ranker import DestinationRanker
from src.services.emergency_call import EmergencyCallService
from src.services.evacuation_planner import EvacuationPlanner
from src.services.maps import GooglePlacesShelterProvider, TomTomGeocoder, TomTomRoutingProvider
from src.services.profile_store import ProfileStore, ProfileStoreUnavailable
from src.services.route_orchestrator import RouteOrchestrator
from src.services.telephony import TwilioTelephony, TwilioWebhookVerifier

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

APP_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.get_level_from_name(settings.log_level),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resolve_call_mode() -> CallMode:
    mode = CallMode(settings.call_mode)
    if mode == CallMode.SCRIPTED_IVR and not settings.public_base_url:
        logger.warning(
            "app.scripted_ivr_without_public_url",
            note="PUBLIC_BASE_URL is not set; falling back to inline announcements",
        )
        return CallMode.INLINE_ANNOUNCEMENT
    return mode


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start and stop SafeHarbor services.

    On startup:
      1. Call-context store (memory or Redis)
      2. Profile store (SQLite, seeded when empty)
      3. Telephony provider and emergency call service
      4. Map providers and evacuation planner

    On shutdown the vendor HTTP clients and caches are closed.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, call_mode=settings.call_mode)
    app.state.start_time = time.time()

    # Redis is only contacted when explicitly selected.
    redis_url = settings.redis_url if settings.call_context_backend == "redis" else None

    # -- 1. Call contexts -------------------------------------------------
    context_cache = CacheManager.for_namespace("safeharbor:call:", redis_url=redis_url)
    call_contexts = CachedCallContextStore(context_cache, ttl_seconds=settings.call_context_ttl_seconds)
    app.state.call_contexts = call_contexts

    # -- 2. Profiles ------------------------------------------------------
    profiles = ProfileStore(settings.profile_db_path)
    try:
        await profiles.initialize()
    except ProfileStoreUnavailable:
        # Calls will be refused with 503 until the database is reachable.
        logger.error("app.profile_store_init_failed", db_path=settings.profile_db_path)
    app.state.profiles = profiles

    # -- 3. Telephony + emergency calls -----------------------------------
    telephony: TwilioTelephony | None = None
    if settings.twilio_configured:
        telephony = TwilioTelephony(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
        )
        logger.info("app.telephony_initialised")
    else:
        logger.warning("app.telephony_not_configured")

    app.state.webhook_verifier = None
    if settings.verify_webhook_signatures and settings.twilio_auth_token:
        app.state.webhook_verifier = TwilioWebhookVerifier(
            settings.twilio_auth_token, settings.public_base_url or None
        )
    elif settings.is_production:
        logger.warning("app.webhook_signatures_not_verified")

    app.state.emergency_calls = EmergencyCallService(
        profiles=profiles,
        contexts=call_contexts,
        telephony=telephony,
        default_target_number=settings.target_phone_number,
        mode=_resolve_call_mode(),
        public_base_url=settings.public_base_url or None,
        builder=CallScriptBuilder(spell_contact_digits=settings.spell_contact_digits),
        machine=ConversationStateMachine(
            max_turns=settings.ivr_max_turns,
            max_duration_seconds=settings.ivr_max_duration_seconds,
        ),
        gather_timeout_seconds=settings.ivr_gather_timeout_seconds,
    )

    # -- 4. Evacuation ----------------------------------------------------
    routing: TomTomRoutingProvider | None = None
    geocoder: TomTomGeocoder | None = None
    geocode_cache: CacheManager | None = None
    if settings.tomtom_api_key:
        routing = TomTomRoutingProvider(settings.tomtom_api_key, timeout=settings.routing_timeout_seconds)
        geocode_cache = CacheManager.for_namespace("safeharbor:geocode:", redis_url=redis_url)
        geocoder = TomTomGeocoder(
            settings.tomtom_api_key,
            cache=geocode_cache,
            cache_ttl_seconds=settings.geocode_cache_ttl,
            timeout=settings.routing_timeout_seconds,
        )
        logger.info("app.tomtom_initialised")
    else:
        logger.warning("app.tomtom_not_configured", note="routes will use distance estimates")

    places: GooglePlacesShelterProvider | None = None
    if settings.google_maps_api_key:
        places = GooglePlacesShelterProvider(settings.google_maps_api_key, timeout=settings.routing_timeout_seconds)
        logger.info("app.places_initialised")

    app.state.evacuation = EvacuationPlanner(
        ranker=DestinationRanker(load_flood_zones()),
        orchestrator=RouteOrchestrator(routing, timeout_seconds=settings.routing_timeout_seconds),
        static_catalog=load_safe_zones(),
        geocoder=geocoder,
        shelters=places,
        search_radius_m=settings.shelter_search_radius_m,
        search_max_results=settings.shelter_search_max_results,
        default_count=settings.default_route_count,
    )

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")
    for client in (routing, geocoder, places):
        if client is not None:
            await client.close()
    if geocode_cache is not None:
        await geocode_cache.close()
    await context_cache.close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SafeHarbor API",
    description=(
        "Hurricane preparedness backend: automated SOS calls to emergency "
        "services and ranked, traffic-aware evacuation routes."
    ),
    version=APP_VERSION,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
# allow_credentials=True must not be combined with allow_origins=["*"].
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

app.add_middleware(
    RateLimitMiddleware,
    max_requests_per_minute=settings.rate_limit_per_minute,
    trusted_proxy_count=settings.trusted_proxy_count,
)

# -- Prometheus metrics -----------------------------------------------------
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/api/v1/health"],
).instrument(app).expose(
    app,
    endpoint="/metrics",
    include_in_schema=not settings.is_production,
)

app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "SafeHarbor API",
        "version": APP_VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "emergency_calls": "/api/v1/emergency/calls",
            "emergency_classify": "/api/v1/emergency/classify",
            "ivr_webhook": "/api/v1/emergency/ivr",
            "call_status_webhook": "/api/v1/emergency/call-status",
            "profiles": "/api/v1/profiles",
            "evacuation_routes": "/api/v1/evacuation/routes",
            "safe_zones": "/api/v1/evacuation/safe-zones",
            "shelters": "/api/v1/evacuation/shelters/{zip_code}",
            "flood_zones": "/api/v1/evacuation/flood-zones",
        },
    }
