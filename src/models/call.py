"""Models for an automated emergency call and its IVR conversation."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import (
    CallDirective,
    CallEventKind,
    CallMode,
    ConversationState,
    EmergencyType,
    OperatorIntent,
    TerminationReason,
)
from src.models.profile import EmergencyProfile


class Script(BaseModel):
    """Spoken payload of an outbound emergency call.

    ``utterances`` is the informational body (greeting through the
    service-needed sentence).  Inline announcements carry ``closing``
    lines and a terminal pause; scripted IVR calls carry a ``prompt``
    that solicits operator follow-up instead.
    """

    model_config = ConfigDict(frozen=True)

    mode: CallMode
    emergency_type: EmergencyType
    utterances: list[str]
    closing: list[str] = Field(default_factory=list)
    prompt: str | None = None
    no_input_message: str | None = None
    pause_seconds: int = 0

    @property
    def awaits_operator(self) -> bool:
        return self.prompt is not None

    @property
    def spoken_text(self) -> str:
        parts = [*self.utterances, *self.closing]
        if self.prompt:
            parts.append(self.prompt)
        return " ".join(parts)


class CallEvent(BaseModel):
    """An inbound event for one call: start, operator input or silence."""

    model_config = ConfigDict(frozen=True)

    kind: CallEventKind
    speech: str = ""
    digits: str = ""
    received_at: float = Field(default_factory=time.time)

    @property
    def operator_text(self) -> str:
        return (self.speech or self.digits or "").strip()


class CallInstruction(BaseModel):
    """Outbound instruction for the telephony layer."""

    model_config = ConfigDict(frozen=True)

    utterances: list[str]
    directive: CallDirective
    prompt: str | None = None
    no_input_message: str | None = None
    pause_seconds: int = 0

    @property
    def terminates(self) -> bool:
        return self.directive == CallDirective.HANGUP


class CallContext(BaseModel):
    """Ephemeral per-call state, keyed by the provider call identifier."""

    model_config = ConfigDict(frozen=True)

    call_id: str = ""
    caller_id: str
    profile: EmergencyProfile
    emergency_type: EmergencyType
    transcript: str = ""
    mode: CallMode = CallMode.INLINE_ANNOUNCEMENT
    script: Script
    state: ConversationState = ConversationState.INITIAL
    turns: int = 0
    started_at: float = Field(default_factory=time.time)
    last_intent: OperatorIntent | None = None
    termination_reason: TerminationReason | None = None

    @property
    def is_terminated(self) -> bool:
        return self.state == ConversationState.TERMINATED


class PlacedCall(BaseModel):
    """Result of a successful call placement."""

    call_sid: str
    target_number: str
    emergency_type: EmergencyType
    mode: CallMode
