"""Webhook routes for Twilio voice and messaging callbacks."""

from typing import Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import PlainTextResponse, Response

from ..config import Settings
from ..core.logging import bind_call_context, unbind_call_context
from ..errors import NumberNotConfiguredError, NumSphereError
from ..flows import CallContext, FlowResponseBuilder, GatherRouter
from ..storage import NumberRepository, PhoneNumberRecord
from ..telephony import auto_reply_response, error_response, multi_forward_response
from ..telephony.messaging import preview_body
from ..telephony.twiml import NUMBER_NOT_CONFIGURED_MESSAGE, TECHNICAL_DIFFICULTIES_MESSAGE
from ..usage import CallStatusEvent, MinuteLimitPolicy, UsageRecorder
from .deps import (
    callback_base_url,
    get_app_settings,
    get_gather_router,
    get_limit_policy,
    get_repository,
    get_response_builder,
    get_twilio_form,
    get_usage_recorder,
    verify_twilio_signature,
)

logger = structlog.get_logger()

router = APIRouter(tags=["webhooks"], dependencies=[Depends(verify_twilio_signature)])


class TwiMLResponse(Response):
    """Voice and messaging documents."""

    media_type = "text/xml"


def call_context(request: Request, form: Dict[str, str], settings: Settings) -> CallContext:
    return CallContext(
        call_sid=form.get("CallSid", ""),
        caller=form.get("From", ""),
        called=form.get("To", ""),
        callback_base_url=callback_base_url(request, settings),
    )


async def require_number(repository: NumberRepository, phone_number: Optional[str]) -> PhoneNumberRecord:
    """Look up an active number or raise NumberNotConfiguredError."""
    number = await repository.get_number(phone_number) if phone_number else None
    if number is None:
        raise NumberNotConfiguredError(
            NUMBER_NOT_CONFIGURED_MESSAGE,
            {"phone_number": phone_number},
        )
    return number


# =====================
# Voice
# =====================


@router.post("/voice", response_class=TwiMLResponse)
async def voice_webhook(
    request: Request,
    form: Dict[str, str] = Depends(get_twilio_form),
    settings: Settings = Depends(get_app_settings),
    repository: NumberRepository = Depends(get_repository),
    builder: FlowResponseBuilder = Depends(get_response_builder),
    policy: MinuteLimitPolicy = Depends(get_limit_policy),
):
    """Handle an inbound call: run the called number's active flow."""
    context = call_context(request, form, settings)
    bind_call_context(call_sid=context.call_sid, called=context.called)

    logger.info(
        "Inbound call",
        caller=context.caller,
        call_status=form.get("CallStatus"),
    )

    try:
        number = await require_number(repository, context.called)

        subscription = None
        if number.user_id:
            subscription = await repository.get_subscription(number.user_id)
        policy.check(number, subscription)

        flow = await repository.get_active_flow(number.id)
        rendered = builder.build_with_details(flow.config if flow else None, context)

        logger.info(
            "Generated call document",
            flow_id=flow.id if flow else None,
            flow_format=rendered.flow_format.value if rendered.flow_format else None,
            visited=rendered.visited,
            fallback=rendered.fallback.value,
        )
        return TwiMLResponse(rendered.twiml)

    except NumSphereError as e:
        logger.warning("Call rejected", code=e.code.value, reason=e.message, **e.details)
        return TwiMLResponse(error_response(e.message, settings.default_voice))

    except Exception as e:
        logger.exception("Voice webhook failed", error=str(e))
        return TwiMLResponse(error_response(TECHNICAL_DIFFICULTIES_MESSAGE, settings.default_voice))

    finally:
        unbind_call_context("call_sid", "called")


@router.post("/gather", response_class=TwiMLResponse)
async def gather_webhook(
    request: Request,
    block_id: Optional[str] = Query(None, alias="blockId"),
    form: Dict[str, str] = Depends(get_twilio_form),
    settings: Settings = Depends(get_app_settings),
    repository: NumberRepository = Depends(get_repository),
    gather_router: GatherRouter = Depends(get_gather_router),
):
    """Handle digits collected by a gather block."""
    context = call_context(request, form, settings)
    digits = form.get("Digits")

    logger.info(
        "Gather input",
        call_sid=context.call_sid,
        block_id=block_id,
        digits=digits,
    )

    try:
        flow_config = None
        if digits:
            number = await require_number(repository, context.called)
            flow = await repository.get_active_flow(number.id)
            flow_config = flow.config if flow else None

        return TwiMLResponse(gather_router.route(flow_config, block_id, digits, context))

    except NumberNotConfiguredError as e:
        logger.error("Gather for unknown number", call_sid=context.call_sid, **e.details)
        return TwiMLResponse(error_response(e.message, settings.default_voice))

    except Exception as e:
        logger.exception("Gather webhook failed", call_sid=context.call_sid, error=str(e))
        return TwiMLResponse(error_response(TECHNICAL_DIFFICULTIES_MESSAGE, settings.default_voice))


@router.post("/multi-forward", response_class=TwiMLResponse)
async def multi_forward_webhook(
    form: Dict[str, str] = Depends(get_twilio_form),
    settings: Settings = Depends(get_app_settings),
):
    """Ring several numbers, then fall back to voicemail."""
    ring_timeout = form.get("RingTimeout")

    logger.info(
        "Multi-forward",
        call_sid=form.get("CallSid"),
        strategy=form.get("Strategy"),
    )

    twiml = multi_forward_response(
        form.get("ForwardNumbers"),
        strategy=form.get("Strategy"),
        ring_timeout=int(ring_timeout) if ring_timeout and ring_timeout.isdigit() else None,
        voice=settings.default_voice,
    )
    return TwiMLResponse(twiml)


# =====================
# Status
# =====================


@router.post("/status", response_class=PlainTextResponse)
async def status_webhook(
    form: Dict[str, str] = Depends(get_twilio_form),
    repository: NumberRepository = Depends(get_repository),
    recorder: UsageRecorder = Depends(get_usage_recorder),
):
    """Handle call status updates and account completed calls."""
    event = CallStatusEvent.from_form(form)

    logger.info(
        "Call status",
        call_sid=event.call_sid,
        call_status=event.call_status,
        duration=event.duration_seconds,
        direction=event.direction,
    )

    number = await repository.get_number(event.tracked_number) if event.tracked_number else None
    if number is None:
        return PlainTextResponse("OK")

    try:
        await recorder.record_completed_call(number, event)
    except Exception as e:
        logger.exception("Failed to record usage", call_sid=event.call_sid, error=str(e))

    return PlainTextResponse("OK")


# =====================
# Messaging
# =====================


@router.post("/sms", response_class=TwiMLResponse)
async def sms_webhook(
    form: Dict[str, str] = Depends(get_twilio_form),
    repository: NumberRepository = Depends(get_repository),
):
    """Auto-reply to inbound text messages."""
    body = form.get("Body")
    to = form.get("To")

    logger.info(
        "Inbound message",
        message_sid=form.get("MessageSid"),
        sender=form.get("From"),
        to=to,
        body=preview_body(body),
    )

    number = await repository.get_number(to) if to else None
    if number is None:
        logger.error("No active number for message", to=to)
        return PlainTextResponse("Number not found", status_code=status.HTTP_404_NOT_FOUND)

    return TwiMLResponse(auto_reply_response(body))
