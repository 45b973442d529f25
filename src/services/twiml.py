"""Render call instructions to TwiML documents.

Every utterance is spoken with the Polly Joanna voice at a slowed
prosody rate so dispatchers can transcribe names and addresses.  A
``GATHER`` instruction nests its prompt in a ``<Gather>`` and follows it
with a ``<Redirect>`` to the timeout webhook, so silence on the line
comes back to the server as an explicit no-input event instead of
falling through to the end of the document.
"""

from __future__ import annotations

from typing import Final

from twilio.twiml.voice_response import Gather, Say, VoiceResponse

from src.models.call import CallInstruction

VOICE: Final[str] = "Polly.Joanna"
LANGUAGE: Final[str] = "en-US"
SPEECH_RATE: Final[str] = "80%"

UNKNOWN_CALL_MESSAGE: Final[str] = (
    "This call session has ended. Emergency services have been notified. Goodbye."
)


class TwimlRenderer:
    """Turns :class:`CallInstruction` objects into TwiML strings.

    Parameters
    ----------
    action_url:
        Absolute URL Twilio posts operator input to.  Required only for
        instructions that gather input.
    timeout_url:
        Absolute URL redirected to when a gather times out with no input.
    gather_timeout_seconds:
        Seconds of silence before the gather gives up.
    """

    __slots__ = ("_action_url", "_gather_timeout_seconds", "_timeout_url")

    def __init__(
        self,
        *,
        action_url: str | None = None,
        timeout_url: str | None = None,
        gather_timeout_seconds: int = 10,
    ) -> None:
        self._action_url = action_url
        self._timeout_url = timeout_url
        self._gather_timeout_seconds = gather_timeout_seconds

    @staticmethod
    def _say(text: str) -> Say:
        say = Say(voice=VOICE, language=LANGUAGE)
        say.prosody(text, rate=SPEECH_RATE)
        return say

    def render(self, instruction: CallInstruction) -> str:
        response = VoiceResponse()
        for utterance in instruction.utterances:
            response.append(self._say(utterance))

        if instruction.terminates:
            if instruction.pause_seconds:
                response.pause(length=instruction.pause_seconds)
            response.hangup()
            return str(response)

        if not self._action_url:
            raise ValueError("A gather instruction needs an action URL to post operator input to")

        gather = Gather(
            input="speech dtmf",
            action=self._action_url,
            method="POST",
            timeout=self._gather_timeout_seconds,
            num_digits=1,
            speech_timeout="auto",
            language=LANGUAGE,
        )
        if instruction.prompt:
            gather.append(self._say(instruction.prompt))
        response.append(gather)

        if self._timeout_url:
            response.redirect(self._timeout_url, method="POST")
        else:
            if instruction.no_input_message:
                response.append(self._say(instruction.no_input_message))
            response.hangup()
        return str(response)

    def render_closing(self, message: str = UNKNOWN_CALL_MESSAGE) -> str:
        """A one-sentence document that speaks *message* and hangs up."""
        response = VoiceResponse()
        response.append(self._say(message))
        response.hangup()
        return str(response)
