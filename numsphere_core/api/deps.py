"""
API Dependencies

Common dependencies for FastAPI routes:
- Services held on the application state
- Twilio webhook form parsing and signature validation
- Callback URL construction
"""

from typing import Dict

from fastapi import Depends, Request

from ..config import Settings
from ..errors import InvalidSignatureError
from ..flows import FlowResponseBuilder, FlowValidator, GatherRouter
from ..storage import NumberRepository
from ..telephony import TwilioSignatureVerifier
from ..usage import MinuteLimitPolicy, UsageRecorder


# ============================================================================
# Application State
# ============================================================================


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(request: Request) -> NumberRepository:
    return request.app.state.repository


def get_response_builder(request: Request) -> FlowResponseBuilder:
    return request.app.state.response_builder


def get_gather_router(request: Request) -> GatherRouter:
    return request.app.state.gather_router


def get_flow_validator(request: Request) -> FlowValidator:
    return request.app.state.flow_validator


def get_limit_policy(request: Request) -> MinuteLimitPolicy:
    return request.app.state.limit_policy


def get_usage_recorder(request: Request) -> UsageRecorder:
    return request.app.state.usage_recorder


# ============================================================================
# Twilio Webhooks
# ============================================================================


async def get_twilio_form(request: Request) -> Dict[str, str]:
    """Form parameters of a Twilio webhook."""
    form_data = await request.form()
    return {key: str(value) for key, value in form_data.items()}


def public_request_url(request: Request, settings: Settings) -> str:
    """
    URL Twilio signed for this request.

    Behind a proxy the inbound URL differs from the public one, so the
    configured public base replaces scheme and host when set.
    """
    if not settings.public_base_url:
        return str(request.url)

    url = settings.public_base_url + request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return url


def callback_base_url(request: Request, settings: Settings) -> str:
    """Root for callback URLs embedded in generated documents."""
    base = settings.public_base_url or str(request.base_url).rstrip("/")
    return base + settings.webhook_prefix


async def verify_twilio_signature(
    request: Request,
    form: Dict[str, str] = Depends(get_twilio_form),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject webhooks without a valid X-Twilio-Signature when enabled."""
    if not settings.twilio_validate_signatures:
        return

    verifier = TwilioSignatureVerifier(settings.twilio_auth_token)
    url = public_request_url(request, settings)

    if not verifier.verify(url, form, request.headers.get(TwilioSignatureVerifier.HEADER)):
        raise InvalidSignatureError("Invalid Twilio signature", {"path": request.url.path})
