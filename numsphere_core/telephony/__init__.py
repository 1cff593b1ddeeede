"""Twilio markup, forwarding, messaging and webhook signatures."""

from .forwarding import ForwardStrategy, build_forward_verbs, multi_forward_response
from .messaging import auto_reply_response
from .signature import TwilioSignatureVerifier
from .twiml import default_greeting_response, error_response, render_voice_document

__all__ = [
    "ForwardStrategy",
    "build_forward_verbs",
    "multi_forward_response",
    "auto_reply_response",
    "TwilioSignatureVerifier",
    "default_greeting_response",
    "error_response",
    "render_voice_document",
]
