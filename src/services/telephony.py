"""Outbound call placement through Twilio.

:class:`TwilioTelephony` places a call whose initial TwiML is supplied
inline, so inline-announcement calls need no webhook at all.  Provider
rejections are mapped onto :class:`CallPlacementRejected` with a
remediation hint the caller-facing API can show as-is.  Placement is
never retried: a duplicate emergency call is worse than a failed one.

:class:`TwilioWebhookVerifier` authenticates the inbound IVR and status
webhooks with the account auth token.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from enum import StrEnum
from typing import Protocol, runtime_checkable

import structlog
from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client

logger = structlog.get_logger(__name__)


class CallRejectionReason(StrEnum):
    __slots__ = ()

    INVALID_NUMBER_FORMAT = "invalid-number-format"
    UNVERIFIED_DESTINATION = "unverified-destination"
    PROVIDER_AUTH_FAILURE = "provider-auth-failure"
    RATE_LIMITED = "rate-limited"
    PROVIDER_ERROR = "provider-error"


# Twilio REST error codes -> rejection reason.
_TWILIO_ERROR_CODES: dict[int, CallRejectionReason] = {
    21219: CallRejectionReason.UNVERIFIED_DESTINATION,
    21211: CallRejectionReason.INVALID_NUMBER_FORMAT,
    21214: CallRejectionReason.INVALID_NUMBER_FORMAT,
    21610: CallRejectionReason.INVALID_NUMBER_FORMAT,
    20003: CallRejectionReason.PROVIDER_AUTH_FAILURE,
    20005: CallRejectionReason.PROVIDER_AUTH_FAILURE,
    20429: CallRejectionReason.RATE_LIMITED,
}

_HINTS: dict[CallRejectionReason, str] = {
    CallRejectionReason.UNVERIFIED_DESTINATION: (
        "The number {number} is not verified on this account. Trial accounts can only "
        "call verified numbers; verify it in the Twilio console or upgrade the account."
    ),
    CallRejectionReason.INVALID_NUMBER_FORMAT: (
        "The phone number {number} is not valid. Use E.164 format, e.g. +13614259843."
    ),
    CallRejectionReason.PROVIDER_AUTH_FAILURE: (
        "The telephony credentials were rejected. Check TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN."
    ),
    CallRejectionReason.RATE_LIMITED: (
        "The telephony provider is rate limiting requests. Wait a moment before calling again."
    ),
    CallRejectionReason.PROVIDER_ERROR: "The telephony provider could not place the call.",
}


class TelephonyNotConfigured(RuntimeError):
    """Raised when a call is requested but no provider credentials are set."""


class CallPlacementRejected(Exception):
    """The provider refused to place the call."""

    def __init__(
        self,
        reason: CallRejectionReason,
        message: str,
        *,
        hint: str = "",
        code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.hint = hint
        self.code = code


def map_twilio_error(exc: TwilioRestException, target_number: str) -> CallPlacementRejected:
    """Translate a Twilio REST failure into a typed rejection."""
    reason = _TWILIO_ERROR_CODES.get(exc.code or 0)
    if reason is None:
        reason = CallRejectionReason.RATE_LIMITED if exc.status == 429 else CallRejectionReason.PROVIDER_ERROR
    return CallPlacementRejected(
        reason,
        exc.msg or str(exc),
        hint=_HINTS[reason].format(number=target_number),
        code=exc.code,
    )


@runtime_checkable
class TelephonyProvider(Protocol):
    """Places one outbound call and returns the provider call id."""

    async def place_call(
        self,
        twiml: str,
        target_number: str,
        *,
        status_callback: str | None = None,
    ) -> str: ...


class TwilioTelephony:
    """:class:`TelephonyProvider` backed by the Twilio REST client.

    The Twilio client is synchronous, so each request runs in a worker
    thread to keep the event loop free.
    """

    __slots__ = ("_client", "_from_number")

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        client: Client | None = None,
    ) -> None:
        if not (account_sid and auth_token and from_number):
            raise TelephonyNotConfigured("Twilio account SID, auth token and phone number are required")
        self._client = client or Client(account_sid, auth_token)
        self._from_number = from_number

    async def place_call(
        self,
        twiml: str,
        target_number: str,
        *,
        status_callback: str | None = None,
    ) -> str:
        kwargs: dict[str, object] = {"twiml": twiml, "to": target_number, "from_": self._from_number}
        if status_callback:
            kwargs["status_callback"] = status_callback
            kwargs["status_callback_event"] = ["completed"]
            kwargs["status_callback_method"] = "POST"

        try:
            call = await asyncio.to_thread(self._client.calls.create, **kwargs)
        except TwilioRestException as exc:
            rejected = map_twilio_error(exc, target_number)
            logger.warning(
                "telephony.call_rejected",
                reason=rejected.reason.value,
                code=exc.code,
                status=exc.status,
            )
            raise rejected from exc

        logger.info("telephony.call_placed", call_sid=call.sid, twiml_length=len(twiml))
        return call.sid


class TwilioWebhookVerifier:
    """Checks the ``X-Twilio-Signature`` header on inbound webhooks.

    Twilio signs the public URL it called, which differs from the URL the
    app sees behind a proxy; *public_base_url* rebuilds it when set.
    """

    __slots__ = ("_public_base_url", "_validator")

    def __init__(self, auth_token: str, public_base_url: str | None = None) -> None:
        if not auth_token:
            raise TelephonyNotConfigured("Twilio auth token is required to verify webhooks")
        self._validator = RequestValidator(auth_token)
        self._public_base_url = (public_base_url or "").rstrip("/") or None

    def signed_url(self, request_url: str, path: str, query: str = "") -> str:
        if self._public_base_url is None:
            return request_url
        return f"{self._public_base_url}{path}" + (f"?{query}" if query else "")

    def sign(self, url: str, params: Mapping[str, str]) -> str:
        return self._validator.compute_signature(url, dict(params))

    def is_valid(self, url: str, params: Mapping[str, str], signature: str) -> bool:
        if not signature:
            return False
        return self._validator.validate(url, dict(params), signature)
