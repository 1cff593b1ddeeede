"""
Multi-number call forwarding.

Rings several numbers with one of three strategies:
- simultaneous: ring every number at once, first to answer wins
- sequential: try numbers one by one
- priority: try the primary number longer, then all fallbacks together
"""

from enum import Enum
from typing import Any, List, Optional

import structlog
from twilio.twiml import TwiML
from twilio.twiml.voice_response import Dial, Hangup, Record, Say

from .twiml import CONFIGURATION_ERROR_MESSAGE, DEFAULT_VOICE, error_response, render_voice_document

logger = structlog.get_logger()


DEFAULT_RING_TIMEOUT = 20
PRIORITY_EXTRA_SECONDS = 10
VOICEMAIL_MAX_LENGTH = 60
RECORD_FROM_RINGING = "record-from-ringing-dual"

NO_NUMBERS_MESSAGE = "No valid forwarding numbers configured."


class ForwardStrategy(str, Enum):
    """Forwarding strategies."""

    SIMULTANEOUS = "simultaneous"
    SEQUENTIAL = "sequential"
    PRIORITY = "priority"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ForwardStrategy":
        """Parse a strategy name. Unknown values ring simultaneously."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.SIMULTANEOUS


def normalize_numbers(value: Any) -> List[str]:
    """
    Normalize forwarding numbers.

    Accepts a list or a comma-separated string and drops blanks.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        return []
    return [str(n).strip() for n in items if n is not None and str(n).strip()]


def _dial(numbers: List[str], timeout: int, record: bool) -> Dial:
    dial = Dial(
        timeout=timeout,
        record=RECORD_FROM_RINGING if record else None,
    )
    for number in numbers:
        dial.number(number)
    return dial


def build_forward_verbs(
    numbers: List[str],
    strategy: ForwardStrategy = ForwardStrategy.SIMULTANEOUS,
    ring_timeout: int = DEFAULT_RING_TIMEOUT,
    voice: str = DEFAULT_VOICE,
    record: bool = False,
) -> List[TwiML]:
    """
    Build the verbs that ring a set of numbers.

    Args:
        numbers: Numbers to ring, in priority order
        strategy: Forwarding strategy
        ring_timeout: Seconds to ring each attempt
        voice: Voice for hold messages
        record: Record the forwarded call from ringing

    Returns:
        List of TwiML verbs (empty when there are no numbers)
    """
    if not numbers:
        return []

    verbs: List[TwiML] = []

    if strategy == ForwardStrategy.SEQUENTIAL:
        verbs.append(Say("Connecting your call. Please hold.", voice=voice))
        for index, number in enumerate(numbers):
            verbs.append(_dial([number], ring_timeout, record))
            if index < len(numbers) - 1:
                verbs.append(Say("Trying another number. Please continue to hold.", voice=voice))

    elif strategy == ForwardStrategy.PRIORITY:
        primary, fallbacks = numbers[0], numbers[1:]
        verbs.append(Say("Connecting you to our primary contact. Please hold.", voice=voice))
        verbs.append(_dial([primary], ring_timeout + PRIORITY_EXTRA_SECONDS, record))
        if fallbacks:
            verbs.append(Say("Trying our backup contacts. Please continue to hold.", voice=voice))
            verbs.append(_dial(fallbacks, ring_timeout, record))

    else:
        verbs.append(Say("Connecting your call to our team. Please hold.", voice=voice))
        verbs.append(_dial(numbers, ring_timeout, record))

    return verbs


def voicemail_fallback_verbs(voice: str = DEFAULT_VOICE) -> List[TwiML]:
    """Verbs played when nobody picked up a forwarded call."""
    return [
        Say(
            "Sorry, no one is available to take your call right now. "
            "Please leave a message after the beep.",
            voice=voice,
        ),
        Record(max_length=VOICEMAIL_MAX_LENGTH, transcribe=True),
        Say("Thank you for your message. We'll get back to you soon. Goodbye.", voice=voice),
        Hangup(),
    ]


def multi_forward_response(
    forward_numbers: Optional[str],
    strategy: Optional[str] = None,
    ring_timeout: Optional[int] = None,
    voice: str = DEFAULT_VOICE,
) -> str:
    """
    Build the standalone multi-forward document.

    Args:
        forward_numbers: Comma-separated numbers
        strategy: Strategy name (default simultaneous)
        ring_timeout: Seconds per attempt (default 20)
        voice: Voice for messages

    Returns:
        TwiML document ending with a voicemail fallback
    """
    if not forward_numbers:
        logger.error("No forward numbers provided")
        return error_response(CONFIGURATION_ERROR_MESSAGE, voice=voice)

    numbers = normalize_numbers(forward_numbers)
    if not numbers:
        logger.error("No valid forward numbers", forward_numbers=forward_numbers)
        return error_response(NO_NUMBERS_MESSAGE, voice=voice)

    parsed = ForwardStrategy.parse(strategy)
    verbs = build_forward_verbs(
        numbers,
        strategy=parsed,
        ring_timeout=ring_timeout or DEFAULT_RING_TIMEOUT,
        voice=voice,
        record=True,
    )
    verbs.extend(voicemail_fallback_verbs(voice))

    logger.info(
        "Generated multi-forward TwiML",
        strategy=parsed.value,
        numbers=len(numbers),
    )
    return render_voice_document(verbs)


__all__ = [
    "ForwardStrategy",
    "DEFAULT_RING_TIMEOUT",
    "normalize_numbers",
    "build_forward_verbs",
    "voicemail_fallback_verbs",
    "multi_forward_response",
]
