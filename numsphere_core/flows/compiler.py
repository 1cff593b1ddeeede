"""
Flow Compiler.

Walks a block graph from its entry block and concatenates the fragments of
the visited blocks into one voice script.

Traversal follows the first connection of each block only. A set of
visited ids guards every step, so each block renders at most once and
compilation ends after at most ``len(blocks)`` renders whatever the shape
of the graph.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

import structlog
from twilio.twiml import TwiML

from ..telephony.twiml import DEFAULT_VOICE
from .blocks import BlockInterpreter, Continuation, RenderContext
from .graph import FlowGraph
from .models import Block, BlockType, CallContext, GraphFlow

logger = structlog.get_logger()


class StopReason(str, Enum):
    """Why a traversal ended."""

    EMPTY_FLOW = "empty_flow"
    HANGUP = "hangup"
    AWAITING_INPUT = "awaiting_input"
    END_OF_FLOW = "end_of_flow"
    DANGLING_CONNECTION = "dangling_connection"
    CYCLE = "cycle"


@dataclass
class BlockFragment:
    """Verbs contributed by one visited block."""

    block_id: str
    block_type: BlockType
    verbs: List[TwiML] = field(default_factory=list)


@dataclass
class CompilationResult:
    """Output of one compilation."""

    fragments: List[BlockFragment] = field(default_factory=list)
    stopped_by: StopReason = StopReason.EMPTY_FLOW

    @property
    def visited(self) -> List[str]:
        """Ids of the rendered blocks, in traversal order."""
        return [fragment.block_id for fragment in self.fragments]

    @property
    def verbs(self) -> List[TwiML]:
        verbs: List[TwiML] = []
        for fragment in self.fragments:
            verbs.extend(fragment.verbs)
        return verbs

    @property
    def is_empty(self) -> bool:
        return not any(fragment.verbs for fragment in self.fragments)


class FlowCompiler:
    """
    Compiles block graphs into voice scripts.

    Usage:
        compiler = FlowCompiler()
        result = compiler.compile(flow, CallContext(call_sid="CA123"))
        twiml = render_voice_document(result.verbs)
    """

    def __init__(self, interpreter: Optional[BlockInterpreter] = None):
        self.interpreter = interpreter or BlockInterpreter()

    def compile(
        self,
        flow: GraphFlow,
        context: CallContext,
        voice: Optional[str] = None,
    ) -> CompilationResult:
        """
        Compile a flow starting at its entry block.

        Args:
            flow: Parsed graph flow
            context: Live call data
            voice: Voice override (defaults to the flow's voice)

        Returns:
            CompilationResult
        """
        graph = FlowGraph(flow.blocks)
        return self._traverse(graph, graph.entry_block, context, voice or flow.voice)

    def compile_from(
        self,
        flow: GraphFlow,
        start_block_id: str,
        context: CallContext,
        voice: Optional[str] = None,
    ) -> CompilationResult:
        """
        Compile a flow starting at a given block.

        An unknown start id yields an empty result stopped by
        ``DANGLING_CONNECTION``.
        """
        graph = FlowGraph(flow.blocks)
        start = graph.get(start_block_id)
        if start is None:
            logger.warning("Start block not found", block_id=start_block_id)
            return CompilationResult(stopped_by=StopReason.DANGLING_CONNECTION)

        return self._traverse(graph, start, context, voice or flow.voice)

    def _traverse(
        self,
        graph: FlowGraph,
        start: Optional[Block],
        context: CallContext,
        voice: Optional[str],
    ) -> CompilationResult:
        result = CompilationResult()
        if start is None:
            return result

        ctx = RenderContext(call=context, voice=voice or DEFAULT_VOICE)
        visited: Set[str] = set()
        current: Optional[Block] = start

        while current is not None:
            if current.id in visited:
                result.stopped_by = StopReason.CYCLE
                break
            visited.add(current.id)

            outcome = self.interpreter.render(current, ctx)
            result.fragments.append(
                BlockFragment(
                    block_id=current.id,
                    block_type=current.type,
                    verbs=outcome.verbs,
                )
            )

            logger.debug(
                "Rendered block",
                call_sid=context.call_sid,
                block_id=current.id,
                block_type=current.type.value,
                verbs=len(outcome.verbs),
            )

            if outcome.continuation == Continuation.STOP:
                result.stopped_by = StopReason.HANGUP
                break
            if outcome.continuation == Continuation.AWAIT_INPUT:
                result.stopped_by = StopReason.AWAITING_INPUT
                break

            next_id = graph.successor_id(current)
            if next_id is None:
                result.stopped_by = StopReason.END_OF_FLOW
                break

            current = graph.get(next_id)
            if current is None:
                logger.warning(
                    "Connection target not found",
                    call_sid=context.call_sid,
                    target=next_id,
                )
                result.stopped_by = StopReason.DANGLING_CONNECTION

        return result


__all__ = [
    "StopReason",
    "BlockFragment",
    "CompilationResult",
    "FlowCompiler",
]
