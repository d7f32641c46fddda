"""Block registry - the authoritative table of blocks."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from mablocks.exceptions import BlockNotFoundError
from mablocks.geometry import Rectangle

from .models import Block

logger = logging.getLogger(__name__)


class BlockRegistry:
    """Blocks keyed by id, with z-ordering and hit testing.

    Owned by the interactive thread; no locking.
    """

    def __init__(self):
        self._blocks: dict[str, Block] = {}
        self._next_z = 0

    def add(self, block: Block) -> Block:
        """Register a block. Blocks without a z-index are put on top."""
        if block.id in self._blocks:
            raise ValueError(f"Block {block.id} already registered")
        if block.z_index <= 0:
            block.z_index = self._next_z
        self._next_z = max(self._next_z, block.z_index) + 1
        self._blocks[block.id] = block
        logger.debug(f"Registered {block.kind} block {block.id}")
        return block

    def remove(self, block_id: str) -> Block | None:
        return self._blocks.pop(block_id, None)

    def get(self, block_id: str) -> Block | None:
        return self._blocks.get(block_id)

    def clear(self) -> None:
        self._blocks.clear()
        self._next_z = 0

    def __getitem__(self, block_id: str) -> Block:
        try:
            return self._blocks[block_id]
        except KeyError:
            raise BlockNotFoundError(block_id) from None

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def __iter__(self) -> Iterator[Block]:
        return iter(list(self._blocks.values()))

    def __len__(self) -> int:
        return len(self._blocks)

    def ids(self) -> list[str]:
        return list(self._blocks)

    def ordered(self) -> list[Block]:
        """Blocks in draw order (lowest z first, id as tiebreak)."""
        return sorted(self._blocks.values(), key=lambda b: (b.z_index, b.id))

    def rects(self, ids: Iterable[str] | None = None) -> dict[str, Rectangle]:
        """Current rectangles, optionally restricted to ``ids``."""
        if ids is None:
            return {bid: b.rect for bid, b in self._blocks.items()}
        return {bid: self._blocks[bid].rect for bid in ids if bid in self._blocks}

    def apply_rects(self, rects: dict[str, Rectangle]) -> list[str]:
        """Write rectangles back to their blocks.

        :return: Ids of blocks whose rectangle changed
        """
        changed = []
        for bid, rect in rects.items():
            block = self._blocks.get(bid)
            if block is None:
                continue
            if block.rect != rect:
                block.set_rect(rect)
                changed.append(bid)
        return changed

    def hit_test(self, x: float, y: float) -> Block | None:
        """Topmost block containing the point."""
        for block in reversed(self.ordered()):
            if block.rect.contains(x, y):
                return block
        return None

    def bring_to_front(self, block_id: str) -> None:
        block = self[block_id]
        top = max(b.z_index for b in self._blocks.values())
        if block.z_index == top and sum(1 for b in self._blocks.values() if b.z_index == top) == 1:
            return
        block.z_index = self._next_z
        self._next_z += 1
        block.dirty = True
