"""Keyword auto-replies for inbound text messages."""

from typing import List, Optional, Tuple

from twilio.twiml.messaging_response import MessagingResponse


# Checked in order; the first keyword contained in the body wins
AUTO_REPLIES: List[Tuple[str, str]] = [
    (
        "help",
        "Hello! This is an automated response. For support, please visit "
        "our website or call our support line.",
    ),
    ("stop", "You have been unsubscribed from messages. Reply START to re-subscribe."),
    ("start", "Welcome! You are now subscribed to receive messages."),
]

DEFAULT_AUTO_REPLY = "Thank you for your message. We'll get back to you soon!"


def choose_auto_reply(body: Optional[str]) -> str:
    """Pick the auto-reply text for a message body."""
    text = (body or "").lower()
    for keyword, reply in AUTO_REPLIES:
        if keyword in text:
            return reply
    return DEFAULT_AUTO_REPLY


def auto_reply_response(body: Optional[str]) -> str:
    """Build the ``<Response><Message>`` document for a message body."""
    response = MessagingResponse()
    response.message(choose_auto_reply(body))
    return str(response)


def preview_body(body: Optional[str], limit: int = 100) -> str:
    """Shorten a message body for logging."""
    if not body:
        return ""
    return body if len(body) <= limit else body[:limit] + "..."
