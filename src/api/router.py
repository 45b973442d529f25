"""Main API router combining all v1 route modules.

Includes:
    * Emergency: SOS call placement and Twilio voice webhooks
    * Profiles: caller profile lookup and upsert
    * Evacuation: ranked safe destinations, routes, shelters, flood zones
    * Health: liveness and readiness probes
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import emergency, evacuation, health, profile

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(emergency.router)
api_router.include_router(profile.router)
api_router.include_router(evacuation.router)
api_router.include_router(health.router)
