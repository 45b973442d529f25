"""SafeHarbor service layer -- SOS calling and evacuation planning.

The classifier, script builder, conversation machine and destination
ranker are pure; everything that talks to a vendor, a database or a
cache is a separate collaborator injected at application startup.
"""

from __future__ import annotations

from src.services.cache import CacheManager, InMemoryCacheBackend, RedisCacheBackend
from src.services.call_context_store import CachedCallContextStore, CallContextStore, KeyedLocks
from src.services.call_script import CallScriptBuilder, sanitize, spell_digits
from src.services.conversation import ConversationStateMachine, classify_intent, generate_reply
from src.services.destination_ranker import DestinationRanker, haversine_km, score_destination
from src.services.emergency_call import EmergencyCallService
from src.services.emergency_classifier import classify
from src.services.evacuation_planner import EvacuationPlanner
from src.services.maps import (
    GeocodingFailed,
    GooglePlacesShelterProvider,
    PlacesProviderError,
    RoutingProviderError,
    TomTomGeocoder,
    TomTomRoutingProvider,
)
from src.services.profile_store import ProfileNotFound, ProfileStore, ProfileStoreUnavailable
from src.services.route_orchestrator import RouteOrchestrator
from src.services.telephony import (
    CallPlacementRejected,
    CallRejectionReason,
    TelephonyNotConfigured,
    TwilioTelephony,
)
from src.services.twiml import TwimlRenderer

__all__ = [
    "CacheManager",
    "CachedCallContextStore",
    "CallContextStore",
    "CallPlacementRejected",
    "CallRejectionReason",
    "CallScriptBuilder",
    "ConversationStateMachine",
    "DestinationRanker",
    "EmergencyCallService",
    "EvacuationPlanner",
    "GeocodingFailed",
    "GooglePlacesShelterProvider",
    "InMemoryCacheBackend",
    "KeyedLocks",
    "PlacesProviderError",
    "ProfileNotFound",
    "ProfileStore",
    "ProfileStoreUnavailable",
    "RedisCacheBackend",
    "RouteOrchestrator",
    "RoutingProviderError",
    "TelephonyNotConfigured",
    "TomTomGeocoder",
    "TomTomRoutingProvider",
    "TwilioTelephony",
    "TwimlRenderer",
    "classify",
    "classify_intent",
    "generate_reply",
    "haversine_km",
    "sanitize",
    "score_destination",
    "spell_digits",
]
