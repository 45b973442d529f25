"""Emergency call orchestration: classify, script, place, converse.

:class:`EmergencyCallService` is the only component that touches the
profile store, the telephony provider and the call-context store.  The
classifier, script builder and conversation machine it drives are pure.

Call lifecycle::

    place_call()          -> context stored under the provider call SID
    handle_operator_input -> machine step under the call's lock, TwiML out
    handle_timeout        -> same, with a no-input event
    handle_status()       -> context deleted on a terminal call status
"""

from __future__ import annotations

import structlog

from src.models.call import CallContext, CallEvent, PlacedCall
from src.models.enums import CallEventKind, CallMode, CallStatus
from src.services.call_context_store import CallContextStore, KeyedLocks
from src.services.call_script import TRANSCRIPT_MAX, CallScriptBuilder, sanitize
from src.services.conversation import ConversationStateMachine
from src.services.emergency_classifier import classify
from src.services.profile_store import ProfileStore
from src.services.telephony import TelephonyNotConfigured, TelephonyProvider
from src.services.twiml import TwimlRenderer

logger = structlog.get_logger(__name__)

IVR_PATH = "/api/v1/emergency/ivr"
IVR_TIMEOUT_PATH = "/api/v1/emergency/ivr/timeout"
CALL_STATUS_PATH = "/api/v1/emergency/call-status"


class EmergencyCallService:
    """Places automated emergency calls and answers their IVR webhooks.

    Parameters
    ----------
    profiles:
        Source of caller profiles.
    contexts:
        Where live call contexts are kept between webhook deliveries.
    telephony:
        Call placement provider; *None* when credentials are not set, in
        which case :meth:`place_call` raises :class:`TelephonyNotConfigured`.
    default_target_number:
        E.164 number dialled when the request names none.
    mode:
        Script mode for every call placed by this service.
    public_base_url:
        Externally reachable base URL for the webhooks.  Required for
        ``scripted-ivr``; optional otherwise (enables status callbacks).
    """

    __slots__ = (
        "_builder",
        "_contexts",
        "_default_target_number",
        "_locks",
        "_machine",
        "_mode",
        "_profiles",
        "_public_base_url",
        "_renderer",
        "_telephony",
    )

    def __init__(
        self,
        *,
        profiles: ProfileStore,
        contexts: CallContextStore,
        telephony: TelephonyProvider | None,
        default_target_number: str,
        mode: CallMode = CallMode.INLINE_ANNOUNCEMENT,
        public_base_url: str | None = None,
        builder: CallScriptBuilder | None = None,
        machine: ConversationStateMachine | None = None,
        locks: KeyedLocks | None = None,
        gather_timeout_seconds: int = 10,
    ) -> None:
        base = (public_base_url or "").rstrip("/")
        if mode == CallMode.SCRIPTED_IVR and not base:
            raise ValueError("scripted-ivr mode needs a public base URL for the IVR webhooks")

        self._profiles = profiles
        self._contexts = contexts
        self._telephony = telephony
        self._default_target_number = default_target_number
        self._mode = mode
        self._public_base_url = base or None
        self._builder = builder or CallScriptBuilder()
        self._machine = machine or ConversationStateMachine()
        self._locks = locks or KeyedLocks()
        self._renderer = TwimlRenderer(
            action_url=f"{base}{IVR_PATH}" if base else None,
            timeout_url=f"{base}{IVR_TIMEOUT_PATH}" if base else None,
            gather_timeout_seconds=gather_timeout_seconds,
        )

    @property
    def mode(self) -> CallMode:
        return self._mode

    @property
    def telephony_configured(self) -> bool:
        return self._telephony is not None

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    async def place_call(
        self,
        user_id: str,
        transcript: str,
        phone_number: str | None = None,
    ) -> PlacedCall:
        """Place an emergency call on behalf of *user_id*.

        Raises
        ------
        TelephonyNotConfigured
            No telephony provider is available.
        ProfileNotFound, ProfileStoreUnavailable
            The caller profile could not be loaded; no call is placed.
        CallPlacementRejected
            The provider refused the call.
        """
        if self._telephony is None:
            raise TelephonyNotConfigured("Telephony provider credentials are not configured")

        profile = await self._profiles.get(user_id)
        emergency_type = classify(transcript)
        script = self._builder.build(profile, emergency_type, transcript, self._mode)

        context = CallContext(
            caller_id=user_id,
            profile=profile,
            emergency_type=emergency_type,
            transcript=sanitize(transcript, TRANSCRIPT_MAX),
            mode=self._mode,
            script=script,
        )
        instruction, context = self._machine.start(context)
        twiml = self._renderer.render(instruction)

        target = phone_number or self._default_target_number
        status_callback = f"{self._public_base_url}{CALL_STATUS_PATH}" if self._public_base_url else None
        call_sid = await self._telephony.place_call(twiml, target, status_callback=status_callback)

        context = context.model_copy(update={"call_id": call_sid})
        await self._contexts.put(context)

        logger.info(
            "emergency_call.placed",
            call_sid=call_sid,
            caller_id=user_id,
            emergency_type=emergency_type.value,
            mode=self._mode.value,
        )
        return PlacedCall(
            call_sid=call_sid,
            target_number=target,
            emergency_type=emergency_type,
            mode=self._mode,
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def handle_operator_input(self, call_id: str, speech: str = "", digits: str = "") -> str:
        """Advance the call with operator speech or DTMF; return TwiML."""
        event = CallEvent(kind=CallEventKind.OPERATOR_INPUT, speech=speech or "", digits=digits or "")
        return await self._advance(call_id, event)

    async def handle_timeout(self, call_id: str) -> str:
        """Advance the call after a gather timed out with no input."""
        return await self._advance(call_id, CallEvent(kind=CallEventKind.NO_INPUT))

    async def handle_status(self, call_id: str, status: str) -> bool:
        """Record a provider status callback.

        Returns *True* when the status is terminal and the context was
        dropped.
        """
        try:
            terminal = CallStatus(status).is_terminal
        except ValueError:
            logger.debug("emergency_call.unknown_status", call_sid=call_id, status=status)
            return False

        if not terminal:
            return False
        async with self._locks.hold(call_id):
            await self._contexts.delete(call_id)
        logger.info("emergency_call.context_released", call_sid=call_id, status=status)
        return True

    async def _advance(self, call_id: str, event: CallEvent) -> str:
        async with self._locks.hold(call_id):
            context = await self._contexts.get(call_id)
            if context is None:
                logger.warning("emergency_call.unknown_call", call_sid=call_id, event_kind=event.kind.value)
                return self._renderer.render_closing()

            instruction, next_context = self._machine.step(context, event)
            await self._contexts.put(next_context)

        return self._renderer.render(instruction)
