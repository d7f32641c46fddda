"""
MaBlocks - A canvas of movable text and animated image blocks
"""

from .config import Settings, settings
from .exceptions import (
    MaBlocksError,
    DecodeFailure,
    UnsupportedFormatError,
    BlockNotFoundError,
)
from .geometry import Rectangle, ResizeHandle
from .events import PointerButton, PointerEvent, KeyEvent
from .blocks import Block, BlockKind, BlockRegistry
from .layout import ChainGroup, ChainRegistry, GeometrySolver, SolverResult
from .media import (
    AnimationRecord,
    AnimationSupervisor,
    DecodePipeline,
    FrameKind,
    FrameTexture,
    MediaState,
    RenderFrame,
    TextureMemoryManager,
)
from .sessions import CanvasSession
from .canvas import BlockView, CanvasEngine, MediaView

__all__ = [
    # Configuration
    "Settings",
    "settings",
    # Errors
    "MaBlocksError",
    "DecodeFailure",
    "UnsupportedFormatError",
    "BlockNotFoundError",
    # Geometry and input
    "Rectangle",
    "ResizeHandle",
    "PointerButton",
    "PointerEvent",
    "KeyEvent",
    # Blocks and layout
    "Block",
    "BlockKind",
    "BlockRegistry",
    "ChainGroup",
    "ChainRegistry",
    "GeometrySolver",
    "SolverResult",
    # Media
    "AnimationRecord",
    "AnimationSupervisor",
    "DecodePipeline",
    "FrameKind",
    "FrameTexture",
    "MediaState",
    "RenderFrame",
    "TextureMemoryManager",
    # Engine
    "CanvasSession",
    "CanvasEngine",
    "BlockView",
    "MediaView",
]

__version__ = "0.1.0"
