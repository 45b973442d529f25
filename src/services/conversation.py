"""IVR conversation state machine for scripted emergency calls.

The machine is a pure function from ``(CallContext, CallEvent)`` to
``(CallInstruction, CallContext)``.  It holds no connection and no clock:
the telephony layer renders the instruction, and the event carries its own
receive time so duration budgets stay deterministic under test.

States::

    INITIAL --start--> AWAITING_OPERATOR_INPUT --input--> RESPONDING
    RESPONDING --reply spoken--> AWAITING_OPERATOR_INPUT | TERMINATED

``TERMINATED`` is reached by operator sign-off (digit ``9`` or a sign-off
phrase), by a no-input timeout, or when the turn or duration budget runs
out.  Unrecognised operator input is never an error: it degrades to
repeating the caller's own words.
"""

from __future__ import annotations

from typing import Final

import structlog

from src.models.call import CallContext, CallEvent, CallInstruction
from src.models.enums import (
    CallDirective,
    CallEventKind,
    CallMode,
    ConversationState,
    EmergencyType,
    OperatorIntent,
    TerminationReason,
)
from src.services.call_script import (
    CONTACT_MAX,
    LOCATION_MAX,
    MEDICAL_MAX,
    NAME_MAX,
    TRANSCRIPT_MAX,
    sanitize,
)

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------

DEFAULT_MAX_TURNS: Final[int] = 6
DEFAULT_MAX_DURATION_SECONDS: Final[float] = 300.0

# ---------------------------------------------------------------------------
# Operator question routing
# ---------------------------------------------------------------------------

SIGN_OFF_DIGIT: Final[str] = "9"
_SIGN_OFF_PHRASES: Final[tuple[str, ...]] = (
    "goodbye", "good bye", "that's all", "that is all", "no more", "end call",
    "end the call", "hang up",
)

# Checked in order; the first category with a substring hit wins.
_INTENT_KEYWORDS: Final[tuple[tuple[OperatorIntent, tuple[str, ...]], ...]] = (
    (OperatorIntent.SERVICE_TYPE, ("what service", "what kind", "what type", "need")),
    (OperatorIntent.LOCATION, ("location", "where", "address")),
    (OperatorIntent.IDENTITY, ("name", "who")),
    (OperatorIntent.EMERGENCY_CONTACT, ("contact", "phone", "number")),
    (OperatorIntent.MEDICAL_CONDITION, ("medical", "condition", "health")),
    (OperatorIntent.STATUS_CHECK, ("status", "update", "still", "okay", "ok")),
)

_SERVICE_REPLIES: Final[dict[EmergencyType, tuple[str, str]]] = {
    EmergencyType.FIRE: ("I need the fire department.", "There is a fire emergency."),
    EmergencyType.MEDICAL: ("I need an ambulance.", "There is a medical emergency."),
    EmergencyType.POLICE: ("I need the police.", "There is a security emergency."),
    EmergencyType.ACCIDENT: ("I need both fire and medical services. There has been an accident.", ""),
}
_GENERIC_SERVICE_REPLY: Final[tuple[str, str]] = (
    "I need emergency assistance.",
    "Please send help immediately.",
)

REPROMPT: Final[str] = (
    "Do you need any additional information? "
    "Press 1 or say yes to continue, or press 9 to end the call."
)
NO_INPUT_CLOSING: Final[str] = "Thank you. Help is being dispatched. Goodbye."
SIGN_OFF_CLOSING: Final[str] = (
    "Thank you for your assistance. Emergency services have been notified. Goodbye."
)
BUDGET_CLOSING: Final[str] = (
    "This automated call will now end. Please send help as soon as possible. Goodbye."
)


def classify_intent(speech: str = "", digits: str = "") -> OperatorIntent:
    """Route an operator utterance or DTMF input to a question category."""
    if digits.strip() == SIGN_OFF_DIGIT:
        return OperatorIntent.SIGN_OFF

    question = (speech or digits or "").lower()
    if any(phrase in question for phrase in _SIGN_OFF_PHRASES):
        return OperatorIntent.SIGN_OFF

    for intent, keywords in _INTENT_KEYWORDS:
        if any(keyword in question for keyword in keywords):
            return intent
    return OperatorIntent.UNKNOWN


def generate_reply(intent: OperatorIntent, context: CallContext) -> str:
    """Populate the canned reply for *intent* from the call context.

    Always returns a non-empty sentence.
    """
    profile = context.profile
    transcript = sanitize(context.transcript, TRANSCRIPT_MAX).strip()
    name = sanitize(profile.name, NAME_MAX)
    location = sanitize(profile.location, LOCATION_MAX)

    if intent == OperatorIntent.SERVICE_TYPE:
        lead, default = _SERVICE_REPLIES.get(context.emergency_type, _GENERIC_SERVICE_REPLY)
        return f"{lead} {transcript or default}".strip()

    if intent == OperatorIntent.LOCATION:
        return f"The location is {location or 'unknown location'}. Please send help immediately."

    if intent == OperatorIntent.IDENTITY:
        return f"This is {name or 'an emergency alert'}. I need help."

    if intent == OperatorIntent.EMERGENCY_CONTACT:
        contact = sanitize(profile.emergency_contact, CONTACT_MAX) or "not available"
        return (
            f"The emergency contact is {contact}. "
            f"Please send help to {location or 'the location provided'}."
        )

    if intent == OperatorIntent.MEDICAL_CONDITION:
        if profile.has_medical_info:
            note = sanitize(profile.medical_info, MEDICAL_MAX)
            return f"Medical information: {note}. {transcript or 'Please send medical assistance.'}"
        return transcript or "Please send medical assistance immediately."

    if intent == OperatorIntent.STATUS_CHECK:
        return (
            "The situation is still active. Please send help immediately to "
            f"{location or 'the location'}. {transcript}"
        ).strip()

    return transcript or (
        f"This is an emergency alert for {name or 'a person in need'}. "
        f"Please send help to {location or 'the location provided'}."
    )


class ConversationStateMachine:
    """Drives one IVR conversation turn by turn.

    Parameters
    ----------
    max_turns:
        Operator exchanges answered before the call is wound down.  The
        machine reaches ``TERMINATED`` after at most this many inputs.
    max_duration_seconds:
        Wall-clock budget measured from ``CallContext.started_at`` to the
        event's ``received_at``.
    """

    __slots__ = ("_max_duration_seconds", "_max_turns")

    def __init__(
        self,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_duration_seconds: float = DEFAULT_MAX_DURATION_SECONDS,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        if max_duration_seconds <= 0:
            raise ValueError("max_duration_seconds must be positive")
        self._max_turns = max_turns
        self._max_duration_seconds = max_duration_seconds

    @property
    def max_turns(self) -> int:
        return self._max_turns

    @property
    def max_duration_seconds(self) -> float:
        return self._max_duration_seconds

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, context: CallContext) -> tuple[CallInstruction, CallContext]:
        return self.step(context, CallEvent(kind=CallEventKind.START, received_at=context.started_at))

    def step(self, context: CallContext, event: CallEvent) -> tuple[CallInstruction, CallContext]:
        """Apply *event* to *context*; return the instruction and next context."""
        if context.is_terminated:
            return _hangup([SIGN_OFF_CLOSING]), context

        if event.kind == CallEventKind.START:
            return self._on_start(context)

        if event.kind == CallEventKind.NO_INPUT:
            return self._terminate(context, TerminationReason.NO_INPUT_TIMEOUT, [NO_INPUT_CLOSING])

        return self._on_operator_input(context, event)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _on_start(self, context: CallContext) -> tuple[CallInstruction, CallContext]:
        script = context.script
        if context.state != ConversationState.INITIAL:
            # Duplicate start: repeat the pending prompt without advancing.
            return _gather([], REPROMPT), context

        if context.mode == CallMode.INLINE_ANNOUNCEMENT or not script.awaits_operator:
            instruction = CallInstruction(
                utterances=[*script.utterances, *script.closing],
                directive=CallDirective.HANGUP,
                pause_seconds=script.pause_seconds,
            )
            next_context = context.model_copy(update={
                "state": ConversationState.TERMINATED,
                "termination_reason": TerminationReason.SCRIPT_COMPLETE,
            })
            self._log_transition(context, next_context)
            return instruction, next_context

        instruction = CallInstruction(
            utterances=list(script.utterances),
            directive=CallDirective.GATHER,
            prompt=script.prompt,
            no_input_message=script.no_input_message,
        )
        next_context = context.model_copy(update={"state": ConversationState.AWAITING_OPERATOR_INPUT})
        self._log_transition(context, next_context)
        return instruction, next_context

    def _on_operator_input(
        self, context: CallContext, event: CallEvent
    ) -> tuple[CallInstruction, CallContext]:
        intent = classify_intent(event.speech, event.digits)
        if intent == OperatorIntent.SIGN_OFF:
            return self._terminate(
                context, TerminationReason.OPERATOR_SIGN_OFF, [SIGN_OFF_CLOSING], intent=intent
            )

        responding = context.model_copy(update={
            "state": ConversationState.RESPONDING,
            "turns": context.turns + 1,
            "last_intent": intent,
        })
        self._log_transition(context, responding)
        reply = generate_reply(intent, responding)

        if responding.turns >= self._max_turns:
            return self._terminate(
                responding, TerminationReason.TURN_BUDGET_EXHAUSTED, [reply, BUDGET_CLOSING]
            )
        if event.received_at - context.started_at >= self._max_duration_seconds:
            return self._terminate(
                responding, TerminationReason.DURATION_BUDGET_EXHAUSTED, [reply, BUDGET_CLOSING]
            )

        next_context = responding.model_copy(update={"state": ConversationState.AWAITING_OPERATOR_INPUT})
        self._log_transition(responding, next_context)
        return _gather([reply], REPROMPT), next_context

    def _terminate(
        self,
        context: CallContext,
        reason: TerminationReason,
        utterances: list[str],
        *,
        intent: OperatorIntent | None = None,
    ) -> tuple[CallInstruction, CallContext]:
        update: dict[str, object] = {
            "state": ConversationState.TERMINATED,
            "termination_reason": reason,
        }
        if intent is not None:
            update["last_intent"] = intent
        next_context = context.model_copy(update=update)
        self._log_transition(context, next_context)
        return _hangup(utterances), next_context

    @staticmethod
    def _log_transition(before: CallContext, after: CallContext) -> None:
        logger.info(
            "conversation.transition",
            call_id=before.call_id,
            from_state=before.state.value,
            to_state=after.state.value,
            turns=after.turns,
            intent=after.last_intent.value if after.last_intent else None,
            reason=after.termination_reason.value if after.termination_reason else None,
        )


def _gather(utterances: list[str], prompt: str) -> CallInstruction:
    return CallInstruction(
        utterances=utterances,
        directive=CallDirective.GATHER,
        prompt=prompt,
        no_input_message=NO_INPUT_CLOSING,
    )


def _hangup(utterances: list[str]) -> CallInstruction:
    return CallInstruction(utterances=utterances, directive=CallDirective.HANGUP)
