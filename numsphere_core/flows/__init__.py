"""
Call flows.

Parses stored flow definitions and compiles them into voice scripts at
call time:

- models: flow definitions and call context
- graph: entry block and id lookups
- blocks: per-block renderers
- compiler: visited-set graph traversal
- legacy: flat greeting/menu/voicemail/forward flows
- envelope: complete documents with fixed fallbacks
- gather: digit routing for gather callbacks
- validator: editor-side checks
"""

from .blocks import BlockInterpreter, BlockOutcome, Continuation, RenderContext
from .compiler import CompilationResult, FlowCompiler, StopReason
from .envelope import Fallback, FlowResponseBuilder, RenderedResponse
from .gather import GatherRouter
from .graph import FlowGraph, find_block_by_id, find_entry_block
from .legacy import compile_legacy
from .models import (
    Block,
    BlockType,
    CallContext,
    FlowDefinition,
    FlowFormat,
    GatherOption,
    GraphFlow,
    LegacyFlow,
    parse_flow_config,
)
from .validator import FlowValidator, ValidationIssue, ValidationResult

__all__ = [
    # Models
    "Block",
    "BlockType",
    "CallContext",
    "FlowDefinition",
    "FlowFormat",
    "GatherOption",
    "GraphFlow",
    "LegacyFlow",
    "parse_flow_config",
    # Graph
    "FlowGraph",
    "find_block_by_id",
    "find_entry_block",
    # Compilation
    "BlockInterpreter",
    "BlockOutcome",
    "Continuation",
    "RenderContext",
    "CompilationResult",
    "FlowCompiler",
    "StopReason",
    "compile_legacy",
    "Fallback",
    "FlowResponseBuilder",
    "RenderedResponse",
    "GatherRouter",
    # Validation
    "FlowValidator",
    "ValidationIssue",
    "ValidationResult",
]
