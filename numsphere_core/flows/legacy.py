"""
Legacy Format Adapter.

Compiles flat greeting/menu/voicemail/forward flows. There is no graph:
sections are emitted in a fixed order and absent sections contribute
nothing.
"""

from typing import List, Optional

from twilio.twiml import TwiML
from twilio.twiml.voice_response import Dial, Gather, Record, Say

from ..telephony.twiml import DEFAULT_VOICE
from .blocks import STATUS_CALLBACK_EVENTS
from .models import CallContext, LegacyFlow

DEFAULT_MENU_PROMPT = "Please select an option."
DEFAULT_VOICEMAIL_PROMPT = "Please leave a message after the beep."

MENU_TIMEOUT = 10
VOICEMAIL_MAX_LENGTH = 60
FORWARD_TIMEOUT = 30


def compile_legacy(
    flow: LegacyFlow,
    context: CallContext,
    voice: Optional[str] = None,
) -> List[TwiML]:
    """
    Compile a legacy flow.

    Order: greeting, menu, voicemail, forward.

    Args:
        flow: Parsed legacy flow
        context: Live call data
        voice: Voice override (defaults to the flow's voice)

    Returns:
        List of TwiML verbs
    """
    voice = voice or flow.voice or DEFAULT_VOICE
    verbs: List[TwiML] = []

    if flow.greeting:
        verbs.append(Say(flow.greeting, voice=voice))

    menu = flow.menu
    if menu is not None and menu.options is not None:
        gather = Gather(
            input="dtmf",
            timeout=MENU_TIMEOUT,
            num_digits=1,
            action=menu.action or None,
        )
        gather.say(menu.prompt or DEFAULT_MENU_PROMPT, voice=voice)
        verbs.append(gather)

    voicemail = flow.voicemail
    if voicemail is not None:
        verbs.append(Say(voicemail.prompt or DEFAULT_VOICEMAIL_PROMPT, voice=voice))
        verbs.append(
            Record(
                max_length=VOICEMAIL_MAX_LENGTH,
                transcribe=True,
                transcribe_callback=voicemail.callback or None,
            )
        )

    forward = flow.forward
    if forward is not None and forward.number:
        dial = Dial(timeout=FORWARD_TIMEOUT)
        dial.number(
            forward.number,
            status_callback=context.status_callback_url(),
            status_callback_event=STATUS_CALLBACK_EVENTS,
        )
        verbs.append(dial)

    return verbs


__all__ = [
    "compile_legacy",
    "DEFAULT_MENU_PROMPT",
    "DEFAULT_VOICEMAIL_PROMPT",
]
