"""
Response Envelope.

Turns a stored flow definition into a complete voice document. This is the
only place flow failures are caught: whatever happens while parsing or
compiling, the caller gets a well-formed ``<Response>``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

import structlog
from twilio.twiml import TwiML

from ..errors import FlowConfigError
from ..telephony.twiml import (
    CONFIGURATION_ERROR_MESSAGE,
    DEFAULT_VOICE,
    TECHNICAL_DIFFICULTIES_MESSAGE,
    default_greeting_response,
    error_response,
    render_voice_document,
)
from .compiler import FlowCompiler, StopReason
from .legacy import compile_legacy
from .models import CallContext, FlowFormat, GraphFlow, parse_flow_config

logger = structlog.get_logger()


FlowConfigInput = Union[str, bytes, Mapping[str, Any], None]


class Fallback(str, Enum):
    """Fixed documents substituted for a compiled body."""

    NONE = "none"
    DEFAULT_GREETING = "default_greeting"
    CONFIGURATION_ERROR = "configuration_error"
    TECHNICAL_DIFFICULTIES = "technical_difficulties"


@dataclass
class RenderedResponse:
    """A voice document plus how it was produced."""

    twiml: str
    flow_format: Optional[FlowFormat] = None
    visited: List[str] = field(default_factory=list)
    stopped_by: Optional[StopReason] = None
    fallback: Fallback = Fallback.NONE


class FlowResponseBuilder:
    """
    Builds the voice document for an inbound call.

    Usage:
        builder = FlowResponseBuilder()
        twiml = builder.build(flow.config, CallContext(call_sid="CA123"))
    """

    def __init__(
        self,
        compiler: Optional[FlowCompiler] = None,
        default_voice: str = DEFAULT_VOICE,
    ):
        self.compiler = compiler or FlowCompiler()
        self.default_voice = default_voice

    def build(
        self,
        flow_config: FlowConfigInput,
        context: CallContext,
        voice: Optional[str] = None,
    ) -> str:
        """
        Build the voice document for a flow.

        Args:
            flow_config: Stored flow definition, or None when the number has
                no active flow
            context: Live call data
            voice: Voice override

        Returns:
            TwiML document
        """
        return self.build_with_details(flow_config, context, voice).twiml

    def build_with_details(
        self,
        flow_config: FlowConfigInput,
        context: CallContext,
        voice: Optional[str] = None,
    ) -> RenderedResponse:
        """Build the voice document and report how it was produced."""
        if flow_config is None:
            return RenderedResponse(
                twiml=default_greeting_response(voice or self.default_voice),
                fallback=Fallback.DEFAULT_GREETING,
            )

        try:
            return self._compile(flow_config, context, voice)

        except FlowConfigError as e:
            logger.warning(
                "Invalid flow config",
                call_sid=context.call_sid,
                error=e.message,
                details=e.details,
            )
            return RenderedResponse(
                twiml=error_response(CONFIGURATION_ERROR_MESSAGE, voice or self.default_voice),
                fallback=Fallback.CONFIGURATION_ERROR,
            )

        except Exception as e:
            logger.exception(
                "Flow compilation failed",
                call_sid=context.call_sid,
                error=str(e),
            )
            return RenderedResponse(
                twiml=error_response(TECHNICAL_DIFFICULTIES_MESSAGE, voice or self.default_voice),
                fallback=Fallback.TECHNICAL_DIFFICULTIES,
            )

    def _compile(
        self,
        flow_config: Union[str, bytes, Mapping[str, Any]],
        context: CallContext,
        voice: Optional[str],
    ) -> RenderedResponse:
        flow = parse_flow_config(flow_config)
        voice = voice or flow.voice or self.default_voice

        visited: List[str] = []
        stopped_by: Optional[StopReason] = None

        if isinstance(flow, GraphFlow):
            result = self.compiler.compile(flow, context, voice)
            verbs: List[TwiML] = result.verbs
            visited = result.visited
            stopped_by = result.stopped_by
        else:
            verbs = compile_legacy(flow, context, voice)

        if not verbs:
            logger.info(
                "Flow compiled to an empty body",
                call_sid=context.call_sid,
                flow_format=flow.format.value,
            )
            return RenderedResponse(
                twiml=default_greeting_response(voice),
                flow_format=flow.format,
                visited=visited,
                stopped_by=stopped_by,
                fallback=Fallback.DEFAULT_GREETING,
            )

        logger.debug(
            "Flow compiled",
            call_sid=context.call_sid,
            flow_format=flow.format.value,
            visited=visited,
            stopped_by=stopped_by.value if stopped_by else None,
        )

        return RenderedResponse(
            twiml=render_voice_document(verbs),
            flow_format=flow.format,
            visited=visited,
            stopped_by=stopped_by,
        )


__all__ = [
    "Fallback",
    "RenderedResponse",
    "FlowResponseBuilder",
]
