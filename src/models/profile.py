"""Caller profile model for SafeHarbor SOS calls.

A profile is the identity and medical context spoken to an emergency
operator on the caller's behalf.  Every field except ``user_id`` and
``name`` is free text with a spoken default, because the call must always
say *something* coherent for each slot.
"""

from __future__ import annotations

from typing import Final

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_AGE: Final[str] = "Unknown"
DEFAULT_SEX: Final[str] = "Not specified"
DEFAULT_CONTACT: Final[str] = "Not provided"
DEFAULT_LOCATION: Final[str] = "Location unknown"
NO_MEDICAL_INFO: Final[str] = "None provided"


class EmergencyProfile(BaseModel):
    """Caller record loaded into an active call context.

    Frozen: a profile snapshot inside a call is never mutated; updates go
    through :meth:`ProfileStore.upsert` and only affect later calls.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1)
    age: str = DEFAULT_AGE
    sex: str = DEFAULT_SEX
    location: str = DEFAULT_LOCATION
    emergency_contact: str = Field(default=DEFAULT_CONTACT, alias="emergencyContact")
    medical_info: str = Field(default=NO_MEDICAL_INFO, alias="medicalInfo")

    @property
    def has_medical_info(self) -> bool:
        note = self.medical_info.strip()
        return bool(note) and note != NO_MEDICAL_INFO
