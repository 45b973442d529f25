"""Keyword-scoring classifier for transcribed SOS speech.

Maps free text to one of the closed :class:`EmergencyType` categories.
Each category scores the number of its distinct keywords occurring as a
substring of the lower-cased text, and a fixed resolution order picks the
winner:

1. ``fire``     if fire > 0 and fire >= medical and fire >= police
2. ``medical``  if medical > 0 and medical >= police and medical >= accident
3. ``police``   if police > 0 and police >= accident
4. ``accident`` if accident > 0
5. ``medical``  otherwise

The fallback to ``medical`` is a policy choice: with no signal, asking for
an ambulance is the safest single dispatch.  Do not change it without
product sign-off.
"""

from __future__ import annotations

from typing import Final

import structlog

from src.models.enums import EmergencyType

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Keyword sets
# ---------------------------------------------------------------------------

FIRE_KEYWORDS: Final[tuple[str, ...]] = (
    "fire", "burning", "smoke", "flames", "blaze", "burn",
)
MEDICAL_KEYWORDS: Final[tuple[str, ...]] = (
    "heart", "chest", "pain", "hurt", "injured", "bleeding", "unconscious",
    "cannot breathe", "ambulance", "medical", "doctor", "hospital",
)
POLICE_KEYWORDS: Final[tuple[str, ...]] = (
    "attack", "robbery", "theft", "intruder", "threat", "danger", "weapon",
    "police", "crime",
)
ACCIDENT_KEYWORDS: Final[tuple[str, ...]] = (
    "accident", "crash", "collision", "car", "vehicle", "wreck",
)

DEFAULT_EMERGENCY_TYPE: Final[EmergencyType] = EmergencyType.MEDICAL


def _count_hits(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def score(text: str | None) -> dict[EmergencyType, int]:
    """Return the keyword hit count for each scored category."""
    lowered = (text or "").lower()
    return {
        EmergencyType.FIRE: _count_hits(lowered, FIRE_KEYWORDS),
        EmergencyType.MEDICAL: _count_hits(lowered, MEDICAL_KEYWORDS),
        EmergencyType.POLICE: _count_hits(lowered, POLICE_KEYWORDS),
        EmergencyType.ACCIDENT: _count_hits(lowered, ACCIDENT_KEYWORDS),
    }


def classify(text: str | None) -> EmergencyType:
    """Classify transcribed speech into an emergency type.

    Total over all strings: empty, unicode or nonsense input resolves to
    the ``medical`` default and never raises.
    """
    scores = score(text)
    fire = scores[EmergencyType.FIRE]
    medical = scores[EmergencyType.MEDICAL]
    police = scores[EmergencyType.POLICE]
    accident = scores[EmergencyType.ACCIDENT]

    if fire > 0 and fire >= medical and fire >= police:
        result = EmergencyType.FIRE
    elif medical > 0 and medical >= police and medical >= accident:
        result = EmergencyType.MEDICAL
    elif police > 0 and police >= accident:
        result = EmergencyType.POLICE
    elif accident > 0:
        result = EmergencyType.ACCIDENT
    else:
        result = DEFAULT_EMERGENCY_TYPE

    logger.debug(
        "emergency_classifier.classified",
        emergency_type=result.value,
        fire=fire,
        medical=medical,
        police=police,
        accident=accident,
    )
    return result
