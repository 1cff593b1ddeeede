"""
Gather routing.

Resolves the digit a caller pressed at a gather block to the next part of
the call. A matched option either continues the graph at its connected
block or speaks the option text; anything else ends the call politely.
"""

from typing import List, Optional

import structlog

from ..errors import FlowConfigError
from ..telephony.twiml import (
    DEFAULT_VOICE,
    TECHNICAL_DIFFICULTIES_MESSAGE,
    error_response,
    render_voice_document,
)
from .compiler import FlowCompiler
from .envelope import FlowConfigInput
from .models import BlockType, CallContext, GatherOption, GraphFlow, parse_flow_config

logger = structlog.get_logger()


NO_INPUT_MESSAGE = "No input received. Please try again."
NO_ACTIVE_FLOW_MESSAGE = "No active call flow found."
INVALID_FLOW_MESSAGE = "Invalid call flow configuration."
GATHER_NOT_FOUND_MESSAGE = "Gather block not found."
TARGET_NOT_FOUND_MESSAGE = (
    "Configuration error. Connected block not found. Please contact support."
)
SELECTION_THANKS_MESSAGE = "Thank you for your selection."


def describe_options(options: List[GatherOption]) -> str:
    """Spoken list of the options that have a digit."""
    return ", ".join(
        f"Press {option.digit} for {option.text or 'option ' + option.digit}"
        for option in options
        if option.digit.strip()
    )


def invalid_selection_message(digits: str, options: List[GatherOption]) -> str:
    message = f"Invalid selection. You pressed {digits}. The available options are: "
    listing = describe_options(options)
    if listing:
        if listing.endswith("."):
            listing = listing[:-1]
        message += f"{listing}. "
    return message + "Please call back and try again."


class GatherRouter:
    """
    Routes gather callbacks.

    Usage:
        router = GatherRouter()
        twiml = router.route(flow.config, "menu", "1", context)
    """

    def __init__(
        self,
        compiler: Optional[FlowCompiler] = None,
        default_voice: str = DEFAULT_VOICE,
    ):
        self.compiler = compiler or FlowCompiler()
        self.default_voice = default_voice

    def route(
        self,
        flow_config: FlowConfigInput,
        block_id: Optional[str],
        digits: Optional[str],
        context: CallContext,
    ) -> str:
        """
        Build the document for a gather result.

        Args:
            flow_config: Active flow definition of the called number
            block_id: Id of the gather block that collected the digits
            digits: Digits pressed by the caller
            context: Live call data

        Returns:
            TwiML document
        """
        voice = self.default_voice

        if not digits:
            logger.info("Gather without digits", call_sid=context.call_sid, block_id=block_id)
            return error_response(NO_INPUT_MESSAGE, voice)

        if flow_config is None:
            logger.error("No active call flow for gather", call_sid=context.call_sid)
            return error_response(NO_ACTIVE_FLOW_MESSAGE, voice)

        try:
            flow = parse_flow_config(flow_config)
        except FlowConfigError as e:
            logger.error("Invalid flow config for gather", call_sid=context.call_sid, error=e.message)
            return error_response(INVALID_FLOW_MESSAGE, voice)

        if not isinstance(flow, GraphFlow):
            logger.error("Gather on a flow without blocks", call_sid=context.call_sid)
            return error_response(INVALID_FLOW_MESSAGE, voice)

        try:
            return self._route(flow, block_id, digits, context)
        except Exception as e:
            logger.exception("Gather routing failed", call_sid=context.call_sid, error=str(e))
            return error_response(TECHNICAL_DIFFICULTIES_MESSAGE, voice)

    def _route(
        self,
        flow: GraphFlow,
        block_id: Optional[str],
        digits: str,
        context: CallContext,
    ) -> str:
        voice = flow.voice or self.default_voice

        gather_block = next((b for b in flow.blocks if b.id == block_id), None)
        if gather_block is None or gather_block.type != BlockType.GATHER:
            logger.error(
                "Gather block not found",
                call_sid=context.call_sid,
                block_id=block_id,
                available=[b.id for b in flow.blocks],
            )
            return error_response(GATHER_NOT_FOUND_MESSAGE, voice)

        options = gather_block.gather_options()
        selected = next((o for o in options if o.digit == digits), None)

        if selected is None:
            logger.warning(
                "Unknown gather digit",
                call_sid=context.call_sid,
                block_id=block_id,
                digits=digits,
            )
            return error_response(invalid_selection_message(digits, options), voice)

        target_id = (selected.block_id or "").strip()
        if not target_id:
            message = selected.text.strip() or f"Thank you for selecting option {digits}."
            return error_response(message, voice)

        result = self.compiler.compile_from(flow, target_id, context, voice)
        if not result.visited:
            logger.error(
                "Connected block not found",
                call_sid=context.call_sid,
                block_id=block_id,
                target=target_id,
            )
            return error_response(TARGET_NOT_FOUND_MESSAGE, voice)

        logger.info(
            "Routed gather selection",
            call_sid=context.call_sid,
            block_id=block_id,
            digits=digits,
            visited=result.visited,
        )

        if result.is_empty:
            return error_response(SELECTION_THANKS_MESSAGE, voice)

        return render_voice_document(result.verbs)


__all__ = [
    "GatherRouter",
    "describe_options",
    "invalid_selection_message",
]
