"""Spoken script builder for automated emergency calls.

Turns a caller profile, the classified emergency type and the caller's
transcribed words into the ordered utterances read to an emergency
operator.  Every free-text field is sanitised first: angle brackets are
stripped and lengths are capped, so the payload can never break the
TwiML/SSML layer that eventually speaks it.

Two modes are supported and chosen explicitly by the caller:

* ``inline-announcement`` -- the whole call is one announcement ending in
  a closing line and a short pause; no operator input is solicited.
* ``scripted-ivr`` -- the announcement ends with a prompt for operator
  follow-up, and the conversation continues in
  :class:`~src.services.conversation.ConversationStateMachine`.
"""

from __future__ import annotations

import re
from typing import Final

import structlog

from src.models.call import Script
from src.models.enums import CallMode, EmergencyType
from src.models.profile import DEFAULT_CONTACT, EmergencyProfile

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Sanitisation limits
# ---------------------------------------------------------------------------

NAME_MAX: Final[int] = 100
AGE_MAX: Final[int] = 20
SEX_MAX: Final[int] = 20
LOCATION_MAX: Final[int] = 200
CONTACT_MAX: Final[int] = 50
MEDICAL_MAX: Final[int] = 200
TRANSCRIPT_MAX: Final[int] = 500

_MARKUP_RE: Final[re.Pattern[str]] = re.compile(r"[<>]")
_NON_DIGIT_RE: Final[re.Pattern[str]] = re.compile(r"\D")

_DIGIT_WORDS: Final[tuple[str, ...]] = (
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
)

# ---------------------------------------------------------------------------
# Fixed sentences
# ---------------------------------------------------------------------------

SERVICE_NEEDED: Final[dict[EmergencyType, str]] = {
    EmergencyType.FIRE: "Fire department services are needed.",
    EmergencyType.MEDICAL: "Ambulance and medical services are needed.",
    EmergencyType.POLICE: "Police services are needed.",
    EmergencyType.ACCIDENT: "Fire and medical services are needed for an accident.",
}
GENERIC_SERVICE_NEEDED: Final[str] = "Emergency services are needed."

# Short form used in the greeting so the operator hears the dispatch
# request in the very first sentence.
_SERVICE_REQUEST: Final[dict[EmergencyType, str]] = {
    EmergencyType.FIRE: "the fire department",
    EmergencyType.MEDICAL: "an ambulance",
    EmergencyType.POLICE: "the police",
    EmergencyType.ACCIDENT: "the fire department and an ambulance",
}
_GENERIC_SERVICE_REQUEST: Final[str] = "emergency services"

INLINE_CLOSING: Final[str] = "This is an AI call. Can you please send help as soon as possible?"
INLINE_PAUSE_SECONDS: Final[int] = 3
IVR_PROMPT: Final[str] = "Please press any key or speak if you need more information."
IVR_NO_INPUT: Final[str] = "Thank you. Help is being dispatched."
NO_TRANSCRIPT: Final[str] = "Emergency assistance is needed"


def sanitize(text: object, limit: int) -> str:
    """Strip angle brackets and cap *text* at *limit* characters.

    Idempotent: ``sanitize(sanitize(x, n), n) == sanitize(x, n)``.
    """
    if text is None:
        return ""
    return _MARKUP_RE.sub("", str(text))[:limit]


def spell_digits(contact: str) -> str:
    """Spell out the digits of a phone number one by one for TTS clarity.

    ``"361 555 1110"`` becomes ``"three six one five five five one one one zero"``.
    Placeholder and digit-free values are returned unchanged.
    """
    if not contact or contact.strip().lower() == DEFAULT_CONTACT.lower():
        return DEFAULT_CONTACT.lower()
    digits = _NON_DIGIT_RE.sub("", contact)
    if not digits:
        return contact
    return " ".join(_DIGIT_WORDS[int(d)] for d in digits)


def service_needed(emergency_type: EmergencyType) -> str:
    return SERVICE_NEEDED.get(emergency_type, GENERIC_SERVICE_NEEDED)


def service_request(emergency_type: EmergencyType) -> str:
    return _SERVICE_REQUEST.get(emergency_type, _GENERIC_SERVICE_REQUEST)


class CallScriptBuilder:
    """Builds the :class:`Script` for one outbound emergency call.

    Parameters
    ----------
    spell_contact_digits:
        Read the emergency contact digit by digit instead of as a number.
    """

    __slots__ = ("_spell_contact_digits",)

    def __init__(self, *, spell_contact_digits: bool = True) -> None:
        self._spell_contact_digits = spell_contact_digits

    def build(
        self,
        profile: EmergencyProfile,
        emergency_type: EmergencyType,
        transcript: str,
        mode: CallMode,
    ) -> Script:
        """Synthesize the spoken script for *profile* in the given *mode*."""
        name = sanitize(profile.name or "a person in need", NAME_MAX)
        age = sanitize(profile.age or "unknown", AGE_MAX)
        sex = sanitize(profile.sex or "unknown", SEX_MAX)
        location = sanitize(profile.location or "location unknown", LOCATION_MAX)
        contact = sanitize(profile.emergency_contact or DEFAULT_CONTACT, CONTACT_MAX)
        if self._spell_contact_digits:
            contact = spell_digits(contact)
        message = sanitize(transcript, TRANSCRIPT_MAX) or NO_TRANSCRIPT

        utterances = [
            "Hello, this is an automated emergency alert system calling on behalf of "
            f"{name}, requesting {service_request(emergency_type)}.",
            f"Age: {age}, Sex: {sex}.",
            f"Location: {location}.",
            f"Emergency contact: {contact}.",
        ]
        if profile.has_medical_info:
            utterances.append(f"Medical information: {sanitize(profile.medical_info, MEDICAL_MAX)}.")
        utterances.append(f"Message from the person: {message}.")
        utterances.append(service_needed(emergency_type))

        if mode == CallMode.INLINE_ANNOUNCEMENT:
            script = Script(
                mode=mode,
                emergency_type=emergency_type,
                utterances=utterances,
                closing=[INLINE_CLOSING],
                pause_seconds=INLINE_PAUSE_SECONDS,
            )
        else:
            script = Script(
                mode=mode,
                emergency_type=emergency_type,
                utterances=utterances,
                prompt=IVR_PROMPT,
                no_input_message=IVR_NO_INPUT,
            )

        logger.info(
            "call_script.built",
            caller_id=profile.user_id,
            emergency_type=emergency_type.value,
            mode=mode.value,
            utterance_count=len(utterances),
            transcript_length=len(message),
        )
        return script
