"""
TwiML document helpers.

Every voice response leaves the service as a complete ``<Response>``
document built with the Twilio helper library, which escapes reserved
XML characters in all attribute and text values.
"""

from typing import Iterable, Optional

from twilio.twiml import TwiML
from twilio.twiml.voice_response import Hangup, Pause, Say, VoiceResponse


DEFAULT_VOICE = "alice"

# Fixed caller-facing messages
DEFAULT_GREETING = "Hello! Thank you for calling. This number is powered by NumSphere."
DEFAULT_GREETING_FOLLOWUP = (
    "Please configure your call flow in the dashboard to customize this experience."
)
CONFIGURATION_ERROR_MESSAGE = "Configuration error. Please contact support."
TECHNICAL_DIFFICULTIES_MESSAGE = (
    "We're experiencing technical difficulties. Please try again later."
)
NUMBER_NOT_CONFIGURED_MESSAGE = "This number is not configured."


def render_voice_document(verbs: Iterable[TwiML]) -> str:
    """Wrap verbs in a ``<Response>`` document."""
    response = VoiceResponse()
    for verb in verbs:
        response.append(verb)
    return str(response)


def error_response(message: str, voice: Optional[str] = None) -> str:
    """Terminal document: speak a message, then hang up."""
    return render_voice_document([
        Say(message, voice=voice or DEFAULT_VOICE),
        Hangup(),
    ])


def default_greeting_response(voice: Optional[str] = None) -> str:
    """Document used when a number has no active flow."""
    voice = voice or DEFAULT_VOICE
    return render_voice_document([
        Say(DEFAULT_GREETING, voice=voice),
        Pause(length=1),
        Say(DEFAULT_GREETING_FOLLOWUP, voice=voice),
        Hangup(),
    ])


__all__ = [
    "DEFAULT_VOICE",
    "DEFAULT_GREETING",
    "DEFAULT_GREETING_FOLLOWUP",
    "CONFIGURATION_ERROR_MESSAGE",
    "TECHNICAL_DIFFICULTIES_MESSAGE",
    "NUMBER_NOT_CONFIGURED_MESSAGE",
    "render_voice_document",
    "error_response",
    "default_greeting_response",
]
