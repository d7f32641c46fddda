"""Animated media resource management.

- decoder: background decode pipeline (Pillow, thread pool, result queue)
- textures: animation records and the texture memory budget
- supervisor: playing set, frame clock, crash detection and recovery
"""

from .frames import DecodedMedia, FrameTexture, MediaFormat
from .decoder import (
    DecodePipeline,
    DecodeRequest,
    DecodeResult,
    classify_format,
    decode_file,
)
from .textures import AnimationRecord, TextureMemoryManager
from .supervisor import (
    AnimationSupervisor,
    CRASHED_TOKEN,
    FrameKind,
    MediaState,
    RenderFrame,
)

__all__ = [
    "AnimationRecord",
    "AnimationSupervisor",
    "CRASHED_TOKEN",
    "DecodePipeline",
    "DecodeRequest",
    "DecodeResult",
    "DecodedMedia",
    "FrameKind",
    "FrameTexture",
    "MediaFormat",
    "MediaState",
    "RenderFrame",
    "TextureMemoryManager",
    "classify_format",
    "decode_file",
]
