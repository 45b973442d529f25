from __future__ import annotations

from enum import StrEnum


class EmergencyType(StrEnum):
    __slots__ = ()

    FIRE = "fire"
    MEDICAL = "medical"
    POLICE = "police"
    ACCIDENT = "accident"
    GENERAL = "general"


class CallMode(StrEnum):
    __slots__ = ()

    SCRIPTED_IVR = "scripted-ivr"
    INLINE_ANNOUNCEMENT = "inline-announcement"


class ConversationState(StrEnum):
    __slots__ = ()

    INITIAL = "initial"
    AWAITING_OPERATOR_INPUT = "awaiting_operator_input"
    RESPONDING = "responding"
    TERMINATED = "terminated"


class OperatorIntent(StrEnum):
    __slots__ = ()

    SERVICE_TYPE = "service_type"
    LOCATION = "location"
    IDENTITY = "identity"
    EMERGENCY_CONTACT = "emergency_contact"
    MEDICAL_CONDITION = "medical_condition"
    STATUS_CHECK = "status_check"
    SIGN_OFF = "sign_off"
    UNKNOWN = "unknown"


class TerminationReason(StrEnum):
    __slots__ = ()

    SCRIPT_COMPLETE = "script_complete"
    OPERATOR_SIGN_OFF = "operator_sign_off"
    NO_INPUT_TIMEOUT = "no_input_timeout"
    TURN_BUDGET_EXHAUSTED = "turn_budget_exhausted"
    DURATION_BUDGET_EXHAUSTED = "duration_budget_exhausted"


class DestinationCategory(StrEnum):
    __slots__ = ()

    MAJOR_SHELTER = "major_shelter"
    GENERAL_SHELTER = "general_shelter"
    MEDICAL_FACILITY = "medical_facility"
    OTHER = "other"


class CallStatus(StrEnum):
    """Twilio call status values reported to the status callback."""

    __slots__ = ()

    QUEUED = "queued"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BUSY = "busy"
    FAILED = "failed"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_CALL_STATUSES


_TERMINAL_CALL_STATUSES = frozenset({
    CallStatus.COMPLETED,
    CallStatus.BUSY,
    CallStatus.FAILED,
    CallStatus.NO_ANSWER,
    CallStatus.CANCELED,
})


class CallDirective(StrEnum):
    """What the telephony layer does after speaking an instruction."""

    __slots__ = ()

    GATHER = "gather"
    HANGUP = "hangup"


class CallEventKind(StrEnum):
    __slots__ = ()

    START = "start"
    OPERATOR_INPUT = "operator_input"
    NO_INPUT = "no_input"
