"""
Flow graph lookups.

Blocks reference each other by id through ``connections``. References are
not guaranteed to resolve; every lookup here returns None rather than
raising.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set

from .models import Block


def find_entry_block(blocks: Sequence[Block]) -> Optional[Block]:
    """
    Find the block a call starts at.

    The entry block is the first block that no other block connects to.
    When every block has an incoming connection (a fully cyclic flow) the
    first block is used.

    Returns:
        The entry block, or None for an empty flow
    """
    if not blocks:
        return None

    targets: Set[str] = {
        target
        for block in blocks
        for target in block.connections
        if target != block.id
    }

    for block in blocks:
        if block.id not in targets:
            return block

    return blocks[0]


def find_block_by_id(blocks: Iterable[Block], block_id: Optional[str]) -> Optional[Block]:
    """Find a block by id. The first match wins when ids repeat."""
    if block_id is None:
        return None
    return next((b for b in blocks if b.id == block_id), None)


class FlowGraph:
    """
    Read-only index over a flow's blocks.

    Built once per compilation so successor lookups are O(1).
    """

    def __init__(self, blocks: Sequence[Block]):
        self._blocks: List[Block] = list(blocks)
        self._by_id: Dict[str, Block] = {}

        for block in self._blocks:
            # Keep the first occurrence, matching find_block_by_id
            self._by_id.setdefault(block.id, block)

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._by_id

    @property
    def blocks(self) -> List[Block]:
        return list(self._blocks)

    @property
    def entry_block(self) -> Optional[Block]:
        return find_entry_block(self._blocks)

    def get(self, block_id: Optional[str]) -> Optional[Block]:
        """Get a block by id."""
        if block_id is None:
            return None
        return self._by_id.get(block_id)

    def successor_id(self, block: Block) -> Optional[str]:
        """Id of the block traversal continues to, if any."""
        if not block.connections:
            return None
        return block.connections[0]
