"""
CanvasSession - the persisted state of a canvas.

Serialization format:
{
    "_version": 1,
    "blocks": [{"id": "uuid", "kind": "image", "x": 0, "y": 0, ...}, ...],
    "chains": [["uuid-a", "uuid-b"], ...]
}

Only persisted block fields are written. Decoded frames, playback state and
interaction flags are runtime state and are rebuilt after loading.

Reading and writing the JSON file is left to the host application; it passes
the text through to_json() / from_json().
"""

import json
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from mablocks.blocks import Block, BlockKind


class CanvasSession(BaseModel):
    """Snapshot of all blocks and chain groups."""

    model_config = ConfigDict(
        populate_by_name=True,
        validate_assignment=False,
        extra='ignore',
    )

    # Serialization version
    VERSION: ClassVar[int] = 1

    version: int = Field(default=1, alias='_version')
    blocks: list[Block] = Field(default_factory=list)
    # Member ids of each chain group
    chains: list[list[str]] = Field(default_factory=list)

    @classmethod
    def migrate(cls, data: dict[str, Any]) -> dict[str, Any]:
        """
        Migrate serialized data from older versions.

        Version 0 sessions store blocks as
        ``{"id", "rect": [x1, y1, x2, y2], "content": {"Text": {...}} |
        {"Image": {...}}, "chained": bool}`` and a viewport, and have no
        chain list: all chained blocks form a single group.

        Args:
            data: Serialized session data

        Returns:
            Migrated data at current version
        """
        version = data.get('_version', 0)

        # v0 -> v1: flat block fields, explicit chain groups
        if version < 1:
            blocks = []
            chained = []
            for entry in data.get('blocks', []):
                if 'rect' not in entry or 'content' not in entry:
                    blocks.append(entry)
                    continue
                x1, y1, x2, y2 = entry['rect']
                block = {
                    'id': entry.get('id'),
                    'x': x1,
                    'y': y1,
                    'width': x2 - x1,
                    'height': y2 - y1,
                }
                content = entry['content']
                if 'Image' in content:
                    image = content['Image']
                    block['kind'] = BlockKind.IMAGE.value
                    block['sourcePath'] = image.get('path') or None
                    block['counter'] = max(0, int(image.get('counter', 0)))
                    if y2 > y1:
                        block['aspectRatio'] = (x2 - x1) / (y2 - y1)
                else:
                    block['kind'] = BlockKind.TEXT.value
                    block['text'] = content.get('Text', {}).get('text', '')
                if block['id'] is None:
                    del block['id']
                elif entry.get('chained'):
                    chained.append(block['id'])
                blocks.append(block)
            data['blocks'] = blocks
            data['chains'] = [chained] if len(chained) >= 2 else []
            data.pop('viewport', None)
            data['_version'] = 1

        return data

    @classmethod
    def from_api_dict(cls, data: dict[str, Any]) -> 'CanvasSession':
        """
        Create a session from its serialized dictionary.

        Args:
            data: Serialized session data (any version)

        Returns:
            CanvasSession instance
        """
        data = cls.migrate(dict(data))
        return cls.model_validate(data)

    def to_api_dict(self) -> dict[str, Any]:
        """Serialized dictionary at the current version."""
        return self.model_dump(by_alias=True, mode='json', exclude_none=True)

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)

    @classmethod
    def from_json(cls, text: str) -> 'CanvasSession':
        return cls.from_api_dict(json.loads(text))
