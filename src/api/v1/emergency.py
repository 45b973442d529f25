"""Emergency SOS call endpoints and Twilio voice webhooks.

``POST /emergency/calls`` places an automated call to an emergency line
on behalf of a stored caller profile.  The ``/ivr``, ``/ivr/timeout`` and
``/call-status`` routes are Twilio webhooks: they take form-encoded
bodies and, except for the status callback, answer with TwiML.  When a
Twilio auth token is configured every webhook must carry a valid
``X-Twilio-Signature`` header.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Request, Response
from pydantic import BaseModel, Field

from src.models.enums import CallMode, EmergencyType
from src.services.emergency_call import EmergencyCallService
from src.services.emergency_classifier import classify
from src.services.profile_store import ProfileNotFound, ProfileStoreUnavailable
from src.services.telephony import (
    CallPlacementRejected,
    CallRejectionReason,
    TelephonyNotConfigured,
    TwilioWebhookVerifier,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/emergency", tags=["emergency"])

TWIML_MEDIA_TYPE = "application/xml"

_REJECTION_STATUS: dict[CallRejectionReason, int] = {
    CallRejectionReason.INVALID_NUMBER_FORMAT: 400,
    CallRejectionReason.UNVERIFIED_DESTINATION: 403,
    CallRejectionReason.RATE_LIMITED: 429,
    CallRejectionReason.PROVIDER_AUTH_FAILURE: 502,
    CallRejectionReason.PROVIDER_ERROR: 502,
}


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class PlaceCallRequest(BaseModel):
    user_id: str = Field(default="", max_length=128)
    transcribed_message: str = Field(default="", max_length=5000)
    phone_number: str | None = Field(
        default=None, description="E.164 number to call; defaults to the configured target"
    )


class PlaceCallResponse(BaseModel):
    success: bool = True
    call_sid: str
    target_number: str
    emergency_type: EmergencyType
    mode: CallMode
    message: str = "Call initiated successfully"


class ClassifyRequest(BaseModel):
    text: str = Field(default="", max_length=5000)


class ClassifyResponse(BaseModel):
    emergency_type: EmergencyType


class CallStatusResponse(BaseModel):
    call_sid: str
    status: str
    released: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _call_service(request: Request) -> EmergencyCallService:
    service = getattr(request.app.state, "emergency_calls", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Emergency call service not available")
    return service


def _twiml(document: str) -> Response:
    return Response(content=document, media_type=TWIML_MEDIA_TYPE)


async def verify_twilio_signature(request: Request) -> None:
    """Reject webhook calls that Twilio did not sign.

    Verification is skipped when no verifier is installed on
    ``app.state.webhook_verifier`` (no auth token configured).
    """
    verifier: TwilioWebhookVerifier | None = getattr(request.app.state, "webhook_verifier", None)
    if verifier is None:
        return
    form = await request.form()
    params = {key: value for key, value in form.items() if isinstance(value, str)}
    url = verifier.signed_url(str(request.url), request.url.path, request.url.query)
    if not verifier.is_valid(url, params, request.headers.get("X-Twilio-Signature", "")):
        logger.warning("api.emergency.webhook_signature_invalid", path=request.url.path)
        raise HTTPException(status_code=403, detail="Invalid webhook signature.")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/calls", response_model=PlaceCallResponse)
async def place_call(body: PlaceCallRequest, request: Request) -> PlaceCallResponse:
    """Place an automated emergency call for a stored caller.

    The transcript is classified into an emergency type, spoken to the
    operator together with the caller's profile, and (in scripted IVR
    mode) kept for follow-up questions.
    """
    if not body.user_id.strip() or not body.transcribed_message.strip():
        raise HTTPException(
            status_code=400,
            detail="Both user_id and transcribed_message are required.",
        )

    service = _call_service(request)
    try:
        placed = await service.place_call(
            body.user_id.strip(),
            body.transcribed_message,
            body.phone_number or None,
        )
    except ProfileNotFound as exc:
        raise HTTPException(status_code=404, detail=f"User '{exc.user_id}' not found.") from exc
    except ProfileStoreUnavailable as exc:
        raise HTTPException(
            status_code=503,
            detail="Caller profiles are temporarily unavailable; the call was not placed.",
        ) from exc
    except TelephonyNotConfigured as exc:
        raise HTTPException(status_code=503, detail="Telephony provider is not configured.") from exc
    except CallPlacementRejected as exc:
        logger.warning("api.emergency.call_rejected", reason=exc.reason.value, code=exc.code)
        raise HTTPException(
            status_code=_REJECTION_STATUS[exc.reason],
            detail={
                "error": "Failed to make call",
                "reason": exc.reason.value,
                "details": exc.hint or exc.message,
                "code": exc.code,
            },
        ) from exc

    return PlaceCallResponse(
        call_sid=placed.call_sid,
        target_number=placed.target_number,
        emergency_type=placed.emergency_type,
        mode=placed.mode,
    )


@router.post("/classify", response_model=ClassifyResponse)
async def classify_transcript(body: ClassifyRequest) -> ClassifyResponse:
    """Preview the emergency type a transcript would be classified as."""
    return ClassifyResponse(emergency_type=classify(body.text))


@router.post("/ivr", dependencies=[Depends(verify_twilio_signature)])
async def ivr_webhook(
    request: Request,
    CallSid: str = Form(...),
    SpeechResult: str | None = Form(None),
    Digits: str | None = Form(None),
) -> Response:
    """Operator speech or keypad input for a scripted IVR call."""
    service = _call_service(request)
    document = await service.handle_operator_input(CallSid, SpeechResult or "", Digits or "")
    return _twiml(document)


@router.post("/ivr/timeout", dependencies=[Depends(verify_twilio_signature)])
async def ivr_timeout_webhook(request: Request, CallSid: str = Form(...)) -> Response:
    """The operator stayed silent through the gather window."""
    service = _call_service(request)
    return _twiml(await service.handle_timeout(CallSid))


@router.post(
    "/call-status",
    response_model=CallStatusResponse,
    dependencies=[Depends(verify_twilio_signature)],
)
async def call_status_webhook(
    request: Request,
    CallSid: str = Form(...),
    CallStatus: str = Form(""),
) -> CallStatusResponse:
    """Twilio status callback; terminal statuses release the call context."""
    service = _call_service(request)
    released = await service.handle_status(CallSid, CallStatus)
    return CallStatusResponse(call_sid=CallSid, status=CallStatus, released=released)
