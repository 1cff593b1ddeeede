"""
Block Interpreter.

Maps one block plus call context to a markup fragment and a continuation
directive. Renderers are pure: they read the block, build TwiML verbs and
never touch the graph. A block whose required config is missing renders
an empty fragment instead of failing.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional

import structlog
from twilio.twiml import TwiML
from twilio.twiml.voice_response import (
    Dial,
    Gather,
    Hangup,
    Pause,
    Play,
    Record,
    Say,
    Sms,
)

from ..telephony.forwarding import (
    DEFAULT_RING_TIMEOUT,
    ForwardStrategy,
    build_forward_verbs,
    normalize_numbers,
)
from ..telephony.twiml import DEFAULT_VOICE
from .models import Block, BlockType, CallContext

logger = structlog.get_logger()


NO_INPUT_MESSAGE = "We didn't receive any input. Goodbye."
STATUS_CALLBACK_EVENTS = "initiated ringing answered completed"


class Continuation(str, Enum):
    """What traversal does after a block."""

    NEXT = "next"  # Follow the first connection
    STOP = "stop"  # End of call
    AWAIT_INPUT = "await_input"  # Control passes to the gather callback


@dataclass
class BlockOutcome:
    """Result of rendering one block."""

    verbs: List[TwiML] = field(default_factory=list)
    continuation: Continuation = Continuation.NEXT

    @property
    def is_empty(self) -> bool:
        return not self.verbs


@dataclass(frozen=True)
class RenderContext:
    """Inputs shared by every block of one compilation."""

    call: CallContext
    voice: str = DEFAULT_VOICE


# =============================================================================
# Config helpers
# =============================================================================


def config_text(config: Mapping[str, Any], key: str) -> Optional[str]:
    """Read a non-empty text value. Numbers are accepted as text."""
    value = config.get(key)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def config_number(
    config: Mapping[str, Any],
    key: str,
    default: float,
) -> float:
    """Read a positive number, falling back to the default when absent or invalid."""
    value = config.get(key)
    if isinstance(value, bool) or value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number <= 0 or not math.isfinite(number):
        return default
    return number


def config_int(config: Mapping[str, Any], key: str, default: int) -> int:
    """Whole seconds or counts. Fractions round up so a positive value never becomes 0."""
    return math.ceil(config_number(config, key, default))


def format_rate(rate: float) -> str:
    return f"{rate:g}"


# =============================================================================
# Renderers
# =============================================================================


class BlockRenderer(ABC):
    """Renders one block type."""

    block_type: ClassVar[BlockType]

    # Config key without which the block renders nothing
    required_key: ClassVar[Optional[str]] = None

    @abstractmethod
    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        """Render a block into verbs and a continuation."""

    def is_configured(self, block: Block) -> bool:
        if self.required_key is None:
            return True
        return config_text(block.config, self.required_key) is not None


class SayRenderer(BlockRenderer):
    block_type = BlockType.SAY
    required_key = "text"

    MIN_RATE = 0.5
    MAX_RATE = 2.0

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        text = config_text(block.config, "text")
        if text is None:
            return BlockOutcome()

        speed = config_number(block.config, "speed", 1.0)
        rate = max(self.MIN_RATE, min(self.MAX_RATE, speed))

        return BlockOutcome([Say(text, voice=ctx.voice, rate=format_rate(rate))])


class PauseRenderer(BlockRenderer):
    block_type = BlockType.PAUSE

    DEFAULT_DURATION = 2

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        duration = config_int(block.config, "duration", self.DEFAULT_DURATION)
        return BlockOutcome([Pause(length=duration)])


class GatherRenderer(BlockRenderer):
    """
    Collects one digit and hands control to the gather callback.

    Traversal always halts here, with or without a prompt; the callback
    resolves the pressed digit to the next block.
    """

    block_type = BlockType.GATHER
    required_key = "prompt"

    NUM_DIGITS = 1
    TIMEOUT_SECONDS = 10

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        prompt = config_text(block.config, "prompt")
        if prompt is None:
            return BlockOutcome(continuation=Continuation.AWAIT_INPUT)

        gather = Gather(
            input="dtmf",
            num_digits=self.NUM_DIGITS,
            timeout=self.TIMEOUT_SECONDS,
            action=ctx.call.gather_url(block.id),
            method="POST",
        )
        gather.say(prompt, voice=ctx.voice)

        return BlockOutcome(
            [gather, Say(NO_INPUT_MESSAGE, voice=ctx.voice), Hangup()],
            continuation=Continuation.AWAIT_INPUT,
        )


class ForwardRenderer(BlockRenderer):
    block_type = BlockType.FORWARD
    required_key = "number"

    DEFAULT_TIMEOUT = 30
    DEFAULT_HOLD_MUSIC_LOOP = 10

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        number = config_text(block.config, "number")
        if number is None:
            return BlockOutcome()

        dial = Dial(timeout=config_int(block.config, "timeout", self.DEFAULT_TIMEOUT))

        hold_music_url = config_text(block.config, "holdMusicUrl")
        if hold_music_url:
            dial.append(
                Play(
                    hold_music_url,
                    loop=config_int(block.config, "holdMusicLoop", self.DEFAULT_HOLD_MUSIC_LOOP),
                )
            )

        dial.number(
            number,
            status_callback=ctx.call.status_callback_url(),
            status_callback_event=STATUS_CALLBACK_EVENTS,
        )

        return BlockOutcome([dial])


class RecordRenderer(BlockRenderer):
    block_type = BlockType.RECORD

    DEFAULT_MAX_LENGTH = 300
    DEFAULT_FINISH_ON_KEY = "#"

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        verbs: List[TwiML] = []

        prompt = config_text(block.config, "prompt")
        if prompt:
            verbs.append(Say(prompt, voice=ctx.voice))

        verbs.append(
            Record(
                max_length=config_int(block.config, "maxLength", self.DEFAULT_MAX_LENGTH),
                finish_on_key=config_text(block.config, "finishOnKey") or self.DEFAULT_FINISH_ON_KEY,
                transcribe=True,
            )
        )
        return BlockOutcome(verbs)


class PlayRenderer(BlockRenderer):
    block_type = BlockType.PLAY
    required_key = "url"

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        url = config_text(block.config, "url")
        if url is None:
            return BlockOutcome()
        return BlockOutcome([Play(url)])


class SmsRenderer(BlockRenderer):
    block_type = BlockType.SMS
    required_key = "message"

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        message = config_text(block.config, "message")
        if message is None:
            return BlockOutcome()

        to = config_text(block.config, "to") or ctx.call.caller or None
        return BlockOutcome([Sms(message, to=to)])


class HangupRenderer(BlockRenderer):
    block_type = BlockType.HANGUP

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        return BlockOutcome([Hangup()], continuation=Continuation.STOP)


class MultiForwardRenderer(BlockRenderer):
    block_type = BlockType.MULTI_FORWARD
    required_key = "numbers"

    def is_configured(self, block: Block) -> bool:
        return bool(normalize_numbers(block.config.get("numbers")))

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        numbers = normalize_numbers(block.config.get("numbers"))
        if not numbers:
            return BlockOutcome()

        verbs = build_forward_verbs(
            numbers,
            strategy=ForwardStrategy.parse(config_text(block.config, "forwardStrategy")),
            ring_timeout=config_int(block.config, "ringTimeout", DEFAULT_RING_TIMEOUT),
            voice=ctx.voice,
            record=block.config.get("record") is True,
        )
        return BlockOutcome(verbs)


DEFAULT_RENDERERS = (
    SayRenderer,
    PauseRenderer,
    GatherRenderer,
    ForwardRenderer,
    RecordRenderer,
    PlayRenderer,
    SmsRenderer,
    HangupRenderer,
    MultiForwardRenderer,
)


# =============================================================================
# Interpreter
# =============================================================================


class BlockInterpreter:
    """
    Dispatches blocks to their renderers.

    Every BlockType must have a renderer; a missing one is a construction
    error, not a call-time surprise.
    """

    def __init__(self, renderers: Optional[Iterable[BlockRenderer]] = None):
        self._renderers: Dict[BlockType, BlockRenderer] = {}

        for renderer in renderers or [cls() for cls in DEFAULT_RENDERERS]:
            self.register(renderer)

        missing = [t.value for t in BlockType if t not in self._renderers]
        if missing:
            raise ValueError(f"No renderer registered for block types: {', '.join(missing)}")

    def register(self, renderer: BlockRenderer) -> None:
        """Register a renderer, replacing any existing one for its type."""
        self._renderers[renderer.block_type] = renderer

    def renderer_for(self, block_type: BlockType) -> BlockRenderer:
        return self._renderers[block_type]

    def render(self, block: Block, ctx: RenderContext) -> BlockOutcome:
        """Render a block."""
        renderer = self._renderers[block.type]
        outcome = renderer.render(block, ctx)

        if outcome.is_empty and not renderer.is_configured(block):
            logger.debug(
                "Block missing required config",
                block_id=block.id,
                block_type=block.type.value,
                required=renderer.required_key,
            )

        return outcome

    def is_configured(self, block: Block) -> bool:
        """Check whether a block has the config it needs to render."""
        return self._renderers[block.type].is_configured(block)


__all__ = [
    "Continuation",
    "BlockOutcome",
    "RenderContext",
    "BlockRenderer",
    "SayRenderer",
    "PauseRenderer",
    "GatherRenderer",
    "ForwardRenderer",
    "RecordRenderer",
    "PlayRenderer",
    "SmsRenderer",
    "HangupRenderer",
    "MultiForwardRenderer",
    "DEFAULT_RENDERERS",
    "BlockInterpreter",
    "NO_INPUT_MESSAGE",
]
