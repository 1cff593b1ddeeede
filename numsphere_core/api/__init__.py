"""HTTP surface: Twilio webhooks and flow editor endpoints."""

from .app import create_app

__all__ = ["create_app"]
