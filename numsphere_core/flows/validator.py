"""
Flow Validator.

Checks a flow definition before it is saved or activated. Compilation never
fails on these issues (it degrades at call time); the validator tells the
editor what the caller would actually hear.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import structlog

from ..config import get_settings
from ..errors import FlowConfigError
from .blocks import BlockInterpreter
from .graph import FlowGraph
from .models import Block, BlockType, GraphFlow, parse_flow_config

logger = structlog.get_logger()


# Blocks after which traversal never follows connections
TERMINAL_TYPES = {BlockType.HANGUP, BlockType.GATHER}


@dataclass
class ValidationIssue:
    """A validation issue found in a flow."""

    severity: str  # error, warning
    message: str
    block_id: Optional[str] = None
    property_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity,
            "message": self.message,
            "block_id": self.block_id,
            "property_name": self.property_name,
        }


@dataclass
class ValidationResult:
    """Result of flow validation."""

    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    checked_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]


class FlowValidator:
    """
    Validates flow structure and configuration.

    Checks:
    - Parsing (format, block types, ids)
    - Block configuration (required properties)
    - Connections (dangling targets, ignored extra connections)
    - Reachability and loops along the call path
    - Resource limits
    """

    def __init__(
        self,
        interpreter: Optional[BlockInterpreter] = None,
        max_blocks: Optional[int] = None,
    ):
        self.interpreter = interpreter or BlockInterpreter()
        self.max_blocks = max_blocks or get_settings().max_blocks_per_flow

    def validate(self, flow_config: Any) -> ValidationResult:
        """
        Validate a stored flow definition.

        Args:
            flow_config: Flow definition (JSON string or decoded object)

        Returns:
            ValidationResult with issues found
        """
        try:
            flow = parse_flow_config(flow_config)
        except FlowConfigError as e:
            issue = ValidationIssue(severity="error", message=e.message)
            for err in e.details.get("errors", []):
                issue.message += f"; {'.'.join(err['loc'])}: {err['msg']}"
            return ValidationResult(valid=False, issues=[issue])

        # Legacy flows have no graph to check
        if not isinstance(flow, GraphFlow):
            return ValidationResult(valid=True)

        issues: List[ValidationIssue] = []
        issues.extend(self._validate_structure(flow))
        issues.extend(self._validate_blocks(flow))
        issues.extend(self._validate_connections(flow))
        issues.extend(self._validate_logic(flow))
        issues.extend(self._validate_limits(flow))

        valid = all(i.severity != "error" for i in issues)

        logger.debug(
            "Validated flow",
            blocks=len(flow.blocks),
            errors=len([i for i in issues if i.severity == "error"]),
            warnings=len([i for i in issues if i.severity == "warning"]),
        )

        return ValidationResult(valid=valid, issues=issues)

    def _validate_structure(self, flow: GraphFlow) -> List[ValidationIssue]:
        """Check for duplicate block ids."""
        issues = []
        seen_ids: Set[str] = set()

        for block in flow.blocks:
            if block.id in seen_ids:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message=f"Duplicate block ID: {block.id}",
                        block_id=block.id,
                    )
                )
            seen_ids.add(block.id)

        return issues

    def _validate_blocks(self, flow: GraphFlow) -> List[ValidationIssue]:
        """Check required properties."""
        issues = []

        for block in flow.blocks:
            if not self.interpreter.is_configured(block):
                prop = self.interpreter.renderer_for(block.type).required_key
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message=f"Required property '{prop}' is missing; the block will be skipped",
                        block_id=block.id,
                        property_name=prop,
                    )
                )

        return issues

    def _validate_connections(self, flow: GraphFlow) -> List[ValidationIssue]:
        """Validate connections and gather option targets."""
        issues = []
        block_ids = {b.id for b in flow.blocks}

        for block in flow.blocks:
            for target in block.connections:
                if target not in block_ids:
                    issues.append(
                        ValidationIssue(
                            severity="error",
                            message=f"Connection target block not found: {target or '(empty)'}",
                            block_id=block.id,
                        )
                    )
                elif target == block.id:
                    issues.append(
                        ValidationIssue(
                            severity="warning",
                            message="Block has a connection to itself",
                            block_id=block.id,
                        )
                    )

            if block.type in TERMINAL_TYPES and block.connections:
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message=f"Connections after a {block.type.value} block are never followed",
                        block_id=block.id,
                    )
                )
            elif len(block.connections) > 1:
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message="Only the first connection is followed; the others are ignored",
                        block_id=block.id,
                    )
                )

            if block.type == BlockType.GATHER:
                for option in block.gather_options():
                    if option.block_id and option.block_id not in block_ids:
                        issues.append(
                            ValidationIssue(
                                severity="error",
                                message=f"Option {option.digit} targets a missing block: {option.block_id}",
                                block_id=block.id,
                                property_name="options",
                            )
                        )

        return issues

    def _validate_logic(self, flow: GraphFlow) -> List[ValidationIssue]:
        """Validate reachability and loops along the call path."""
        issues = []
        graph = FlowGraph(flow.blocks)
        entry = graph.entry_block

        # Edges the call can actually take
        edges: Dict[str, List[str]] = {}
        for block in graph.blocks:
            edges.setdefault(block.id, []).extend(self._followed_targets(block, graph))

        reachable: Set[str] = set()
        queue = [entry.id] if entry else []

        while queue:
            current = queue.pop(0)
            if current in reachable:
                continue
            reachable.add(current)
            queue.extend(edges.get(current, []))

        for block in flow.blocks:
            if block.id not in reachable:
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message="Block is not reachable from the entry block",
                        block_id=block.id,
                    )
                )

        issues.extend(self._detect_loops(graph))

        return issues

    def _followed_targets(self, block: Block, graph: FlowGraph) -> List[str]:
        targets = []
        if block.type == BlockType.GATHER:
            targets.extend(
                option.block_id
                for option in block.gather_options()
                if option.block_id and option.block_id in graph
            )
        elif block.type != BlockType.HANGUP:
            next_id = graph.successor_id(block)
            if next_id is not None and next_id in graph:
                targets.append(next_id)
        return targets

    def _detect_loops(self, graph: FlowGraph) -> List[ValidationIssue]:
        """
        Detect loops in first-connection traversal.

        Each block has at most one followed successor, so walking from every
        block finds each loop. The compiler cuts a loop at the first repeated
        block, so the caller hears it once.
        """
        issues = []
        reported: Set[str] = set()

        for block in graph.blocks:
            path: List[str] = []
            on_path: Set[str] = set()
            current: Optional[Block] = block

            while current is not None and current.id not in on_path:
                if current.type in (BlockType.HANGUP, BlockType.GATHER):
                    current = None
                    break
                path.append(current.id)
                on_path.add(current.id)
                current = graph.get(graph.successor_id(current))

            if current is None:
                continue

            loop = path[path.index(current.id):]
            loop_start = min(loop)
            if loop_start in reported:
                continue
            reported.add(loop_start)

            issues.append(
                ValidationIssue(
                    severity="warning",
                    message=f"Loop detected ({' -> '.join(loop + [current.id])}); it plays only once",
                    block_id=current.id,
                )
            )

        return issues

    def _validate_limits(self, flow: GraphFlow) -> List[ValidationIssue]:
        """Validate resource limits."""
        if len(flow.blocks) > self.max_blocks:
            return [
                ValidationIssue(
                    severity="error",
                    message=f"Flow exceeds maximum blocks ({len(flow.blocks)} > {self.max_blocks})",
                )
            ]
        return []


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "FlowValidator",
]
