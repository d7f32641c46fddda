"""
Block models and the block registry.

    Block (pydantic, persisted fields + transient flags)
    BlockKind ('text' | 'image')
    BlockRegistry (id -> Block, z-order, hit testing)
"""

from .models import Block, BlockKind, DEFAULT_TEXT
from .registry import BlockRegistry

__all__ = [
    "Block",
    "BlockKind",
    "BlockRegistry",
    "DEFAULT_TEXT",
]
