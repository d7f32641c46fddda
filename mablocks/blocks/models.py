"""
Block - the positioned rectangular canvas entity.

Provides the persisted properties of a block:
- Identity: id, kind
- Geometry: x, y, width, height, aspectRatio (images), zIndex
- Content: text (text blocks), sourcePath and counter (image blocks)

and the transient interaction flags (selected, hovered, dirty) which are
never serialized.

Uses Pydantic v2 with camelCase aliases for session serialization.
Chain membership is not stored on the block; it is looked up in the chain
registry by block id.
"""

from enum import Enum
from typing import Any, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field

from mablocks.geometry import Rectangle


class BlockKind(str, Enum):
    """Block content kinds."""
    TEXT = "text"
    IMAGE = "image"


DEFAULT_TEXT = "Double click to edit..."


class Block(BaseModel):
    """A movable rectangular content block."""

    model_config = ConfigDict(
        # Allow both snake_case and camelCase input
        populate_by_name=True,
        # Blocks are mutated every interaction frame
        validate_assignment=False,
        extra='ignore',
        use_enum_values=True,
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: BlockKind = Field(default=BlockKind.TEXT)

    x: float = Field(default=0.0)
    y: float = Field(default=0.0)
    width: float = Field(default=200.0, gt=0)
    height: float = Field(default=100.0, gt=0)
    # Locked width / height ratio of image blocks
    aspect_ratio: Optional[float] = Field(default=None, alias='aspectRatio', gt=0)
    z_index: int = Field(default=0, alias='zIndex')

    text: Optional[str] = Field(default=None)
    source_path: Optional[str] = Field(default=None, alias='sourcePath')
    counter: int = Field(default=0, ge=0)

    # Transient interaction state
    selected: bool = Field(default=False, exclude=True)
    hovered: bool = Field(default=False, exclude=True)
    dirty: bool = Field(default=True, exclude=True)

    @classmethod
    def text_block(cls, text: str | None = None, **kwargs: Any) -> 'Block':
        return cls(kind=BlockKind.TEXT, text=DEFAULT_TEXT if text is None else text, **kwargs)

    @classmethod
    def image_block(cls, source_path: str, **kwargs: Any) -> 'Block':
        kwargs.setdefault('aspect_ratio', 1.0)
        return cls(kind=BlockKind.IMAGE, source_path=source_path, **kwargs)

    @property
    def rect(self) -> Rectangle:
        """Current rectangle of the block."""
        return Rectangle(self.x, self.y, self.width, self.height)

    def set_rect(self, rect: Rectangle) -> None:
        """Move/resize the block, flagging it dirty if anything changed."""
        if rect.to_tuple() == (self.x, self.y, self.width, self.height):
            return
        self.x, self.y = rect.x, rect.y
        self.width, self.height = rect.width, rect.height
        self.dirty = True

    def is_image(self) -> bool:
        return self.kind == BlockKind.IMAGE

    def is_text(self) -> bool:
        return self.kind == BlockKind.TEXT

    def to_api_dict(self) -> dict[str, Any]:
        """
        Convert to the persisted dictionary form (camelCase keys).

        Transient flags are excluded.
        """
        return self.model_dump(by_alias=True, mode='json', exclude_none=True)

    @classmethod
    def from_api_dict(cls, data: dict[str, Any]) -> 'Block':
        """Create a block from its persisted dictionary (camelCase or snake_case)."""
        return cls.model_validate(data)
