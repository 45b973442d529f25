"""Health check endpoints for SafeHarbor API v1.

Liveness answers as long as the process serves requests.  Readiness
checks the collaborators an emergency call cannot do without: the call
context store, the profile database and telephony credentials.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe; does not touch downstream dependencies."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe.

    ``degraded`` means calls cannot be placed; evacuation planning has
    offline fallbacks and is not checked.
    """
    checks: dict[str, str] = {}
    all_ok = True

    contexts = getattr(request.app.state, "call_contexts", None)
    if contexts is None:
        checks["call_context_store"] = "not_configured"
        all_ok = False
    elif await contexts.ping():
        checks["call_context_store"] = f"ok ({contexts.backend_name})"
    else:
        checks["call_context_store"] = "error"
        all_ok = False

    profiles = getattr(request.app.state, "profiles", None)
    if profiles is None:
        checks["profile_store"] = "not_configured"
        all_ok = False
    elif await profiles.ping():
        checks["profile_store"] = "ok"
    else:
        checks["profile_store"] = "error"
        all_ok = False

    calls = getattr(request.app.state, "emergency_calls", None)
    if calls is not None and calls.telephony_configured:
        checks["telephony"] = f"ok ({calls.mode.value})"
    else:
        checks["telephony"] = "not_configured"
        all_ok = False

    status = "ready" if all_ok else "degraded"
    logger.info("health.readiness_check", status=status, checks=checks)
    return ReadinessResponse(status=status, checks=checks)
