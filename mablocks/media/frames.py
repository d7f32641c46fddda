"""Decoded frame containers shared by the decoder and the texture manager."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np


class MediaFormat(str, Enum):
    """Source formats recognised by the decoder."""

    GIF = "gif"
    PNG = "png"
    APNG = "apng"
    WEBP = "webp"
    JPEG = "jpeg"
    BMP = "bmp"
    TIFF = "tiff"
    AVIF = "avif"
    UNKNOWN = "unknown"


@dataclass(frozen=True, eq=False)
class FrameTexture:
    """One RGBA frame and its display duration.

    :param pixels: RGBA pixels as (height, width, 4) uint8 array
    :param duration: Display duration in seconds
    """

    pixels: np.ndarray | None
    duration: float = 0.0

    @property
    def width(self) -> int:
        if self.pixels is None or self.pixels.ndim < 2:
            return 0
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        if self.pixels is None or self.pixels.ndim < 2:
            return 0
        return int(self.pixels.shape[0])

    @property
    def nbytes(self) -> int:
        """Exact memory held by the pixel buffer."""
        return 0 if self.pixels is None else int(self.pixels.nbytes)

    @property
    def is_valid(self) -> bool:
        """Whether the frame can be drawn (present, non-zero size)."""
        return self.width > 0 and self.height > 0

    def copy(self) -> FrameTexture:
        """Deep copy with its own pixel buffer."""
        pixels = None if self.pixels is None else np.array(self.pixels, copy=True)
        return FrameTexture(pixels=pixels, duration=self.duration)


@dataclass(frozen=True, eq=False)
class DecodedMedia:
    """Immutable output of a decode.

    :param path: Source path
    :param format: Classified source format
    :param frames: Decoded frames in display order
    :param source_frame_count: Frames in the source before truncation
    :param truncated: Whether frames were dropped by the frame limit
    """

    path: str
    format: MediaFormat
    frames: tuple[FrameTexture, ...]
    source_frame_count: int = 1
    truncated: bool = False

    @property
    def width(self) -> int:
        return self.frames[0].width if self.frames else 0

    @property
    def height(self) -> int:
        return self.frames[0].height if self.frames else 0

    @property
    def aspect_ratio(self) -> float:
        """Width / height of the first frame (1.0 if unknown)."""
        if not self.height:
            return 1.0
        return self.width / self.height

    @property
    def nbytes(self) -> int:
        return sum(frame.nbytes for frame in self.frames)
