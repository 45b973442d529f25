from src.models.call import CallContext, CallEvent, CallInstruction, PlacedCall, Script
from src.models.enums import (
    CallDirective,
    CallEventKind,
    CallMode,
    CallStatus,
    ConversationState,
    DestinationCategory,
    EmergencyType,
    OperatorIntent,
    TerminationReason,
)
from src.models.evacuation import (
    Coordinates,
    EvacuationNeeds,
    EvacuationPlan,
    FloodZone,
    GeocodedLocation,
    NearbyShelter,
    RankedDestination,
    RankedRoute,
    RouteLeg,
    RouteSummary,
    SafeDestination,
    ScoreBreakdown,
    ShelterSearch,
)
from src.models.profile import EmergencyProfile

__all__ = [
    "CallContext",
    "CallDirective",
    "CallEvent",
    "CallEventKind",
    "CallInstruction",
    "CallMode",
    "CallStatus",
    "ConversationState",
    "Coordinates",
    "DestinationCategory",
    "EmergencyProfile",
    "EmergencyType",
    "EvacuationNeeds",
    "EvacuationPlan",
    "FloodZone",
    "GeocodedLocation",
    "NearbyShelter",
    "OperatorIntent",
    "PlacedCall",
    "RankedDestination",
    "RankedRoute",
    "RouteLeg",
    "RouteSummary",
    "SafeDestination",
    "ScoreBreakdown",
    "ShelterSearch",
    "Script",
    "TerminationReason",
]
