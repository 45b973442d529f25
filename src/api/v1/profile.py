"""Caller profile endpoints.

Profiles hold what is spoken to an emergency operator on the caller's
behalf.  Only ``user_id`` and ``name`` are required; every other field
falls back to a spoken default.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from src.models.profile import (
    DEFAULT_AGE,
    DEFAULT_CONTACT,
    DEFAULT_LOCATION,
    DEFAULT_SEX,
    NO_MEDICAL_INFO,
    EmergencyProfile,
)
from src.services.profile_store import ProfileNotFound, ProfileStore, ProfileStoreUnavailable

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/profiles", tags=["profiles"])


class UpsertProfileRequest(BaseModel):
    """Create-or-replace body; accepts camelCase keys from the web client."""

    model_config = {"populate_by_name": True}

    user_id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=200)
    age: str | None = None
    sex: str | None = None
    location: str | None = None
    emergency_contact: str | None = Field(default=None, alias="emergencyContact")
    medical_info: str | None = Field(default=None, alias="medicalInfo")


def _store(request: Request) -> ProfileStore:
    store = getattr(request.app.state, "profiles", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Profile store not available")
    return store


@router.get("/{user_id}", response_model=EmergencyProfile)
async def get_profile(user_id: str, request: Request) -> EmergencyProfile:
    try:
        return await _store(request).get(user_id)
    except ProfileNotFound as exc:
        raise HTTPException(status_code=404, detail=f"User '{user_id}' not found.") from exc
    except ProfileStoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="Profile store unavailable.") from exc


@router.post("", response_model=EmergencyProfile)
async def upsert_profile(body: UpsertProfileRequest, request: Request) -> EmergencyProfile:
    """Create or replace a caller profile keyed by ``user_id``."""
    profile = EmergencyProfile(
        user_id=body.user_id,
        name=body.name,
        age=body.age or DEFAULT_AGE,
        sex=body.sex or DEFAULT_SEX,
        location=body.location or DEFAULT_LOCATION,
        emergency_contact=body.emergency_contact or DEFAULT_CONTACT,
        medical_info=body.medical_info or NO_MEDICAL_INFO,
    )
    try:
        saved = await _store(request).upsert(profile)
    except ProfileStoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="Profile store unavailable.") from exc

    logger.info("api.profile.upserted", user_id=saved.user_id)
    return saved
