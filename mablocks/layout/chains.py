"""Chain registry - groups of blocks that move as one rigid unit.

Membership is index based: the registry maps block ids to group ids and group
ids to member sets. Blocks never reference their group, groups never own
blocks.

Toggling the chain flag of a block while at least one other block is flagged
merges every flagged block into one group. Groups dissolve when they drop
below two members or stay idle longer than the timeout; dissolving clears the
chain flag of the remaining members and leaves their positions alone.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable

logger = logging.getLogger(__name__)


@dataclass
class ChainGroup:
    """A set of chained block ids."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    members: set[str] = field(default_factory=set)
    last_interaction: float = 0.0


class ChainRegistry:
    """Tracks chain flags and chain groups.

    :param timeout: Idle time after which a group (or a lone flagged block)
        is unchained
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._groups: dict[str, ChainGroup] = {}
        self._group_of: dict[str, str] = {}
        # Flagged blocks and the time their flag was last touched
        self._flagged: dict[str, float] = {}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_chained(self, block_id: str) -> bool:
        """Whether the block has its chain flag on."""
        return block_id in self._flagged

    def group_of(self, block_id: str) -> ChainGroup | None:
        group_id = self._group_of.get(block_id)
        return self._groups.get(group_id) if group_id else None

    def members_of(self, block_id: str) -> set[str]:
        """The rigid unit of a block: its group members, or just the block."""
        group = self.group_of(block_id)
        if group is None:
            return {block_id}
        return set(group.members)

    def groups(self) -> list[ChainGroup]:
        return list(self._groups.values())

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def toggle(self, block_id: str, now: float) -> ChainGroup | None:
        """Flip the chain flag of a block.

        :param block_id: Block whose flag is toggled
        :param now: Current tick time
        :return: The group the block belongs to afterwards, if any
        """
        if block_id in self._flagged:
            self._unflag(block_id)
            return None

        self._flagged[block_id] = now
        if len(self._flagged) < 2:
            return None
        return self._merge_flagged(now)

    def touch(self, block_id: str, now: float) -> None:
        """Record a move/resize interaction keeping the chain alive."""
        group = self.group_of(block_id)
        if group is not None:
            group.last_interaction = now
            for member in group.members:
                self._flagged[member] = now
        elif block_id in self._flagged:
            self._flagged[block_id] = now

    def expire(self, now: float) -> list[str]:
        """Dissolve groups idle for longer than the timeout.

        :return: Ids of the dissolved groups
        """
        dissolved = []
        for group in list(self._groups.values()):
            if now - group.last_interaction > self.timeout:
                logger.info(f"Chain {group.id} idle for {self.timeout}s, unchaining {len(group.members)} blocks")
                self._dissolve(group.id)
                dissolved.append(group.id)
        for block_id, touched in list(self._flagged.items()):
            if block_id not in self._group_of and now - touched > self.timeout:
                del self._flagged[block_id]
        return dissolved

    def remove_block(self, block_id: str) -> None:
        """Forget a deleted block."""
        if block_id in self._flagged:
            self._unflag(block_id)

    def restore(self, groups: Iterable[Iterable[str]], now: float) -> None:
        """Rebuild groups from persisted member lists."""
        self.clear()
        for members in groups:
            ids = [bid for bid in members if bid not in self._group_of]
            if len(ids) < 2:
                continue
            group = ChainGroup(members=set(ids), last_interaction=now)
            self._groups[group.id] = group
            for bid in ids:
                self._group_of[bid] = group.id
                self._flagged[bid] = now

    def clear(self) -> None:
        self._groups.clear()
        self._group_of.clear()
        self._flagged.clear()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _merge_flagged(self, now: float) -> ChainGroup:
        existing = sorted({self._group_of[b] for b in self._flagged if b in self._group_of})
        if existing:
            group = self._groups[existing[0]]
            for other_id in existing[1:]:
                other = self._groups.pop(other_id)
                group.members |= other.members
        else:
            group = ChainGroup()
            self._groups[group.id] = group
            logger.info(f"Created chain {group.id}")
        group.members |= set(self._flagged)
        group.last_interaction = now
        for block_id in group.members:
            self._group_of[block_id] = group.id
            self._flagged[block_id] = now
        return group

    def _unflag(self, block_id: str) -> None:
        del self._flagged[block_id]
        group_id = self._group_of.pop(block_id, None)
        if group_id is None:
            return
        group = self._groups[group_id]
        group.members.discard(block_id)
        if len(group.members) < 2:
            self._dissolve(group_id)

    def _dissolve(self, group_id: str) -> None:
        group = self._groups.pop(group_id, None)
        if group is None:
            return
        for block_id in group.members:
            self._group_of.pop(block_id, None)
            self._flagged.pop(block_id, None)
        logger.debug(f"Dissolved chain {group_id}")
