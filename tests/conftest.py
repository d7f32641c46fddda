"""
Pytest fixtures for MaBlocks tests
"""

from pathlib import Path

import numpy as np
import PIL.Image
import pytest

from mablocks import CanvasEngine, Settings
from mablocks.media import DecodedMedia, FrameTexture, MediaFormat


def make_frames(count: int, side: int = 10, duration: float = 0.1) -> tuple[FrameTexture, ...]:
    """Synthetic RGBA frames of side*side*4 bytes each."""
    frames = []
    for index in range(count):
        pixels = np.full((side, side, 4), index % 256, dtype=np.uint8)
        frames.append(FrameTexture(pixels=pixels, duration=duration))
    return tuple(frames)


def make_media(count: int, side: int = 10, duration: float = 0.1, path: str = "synthetic.gif") -> DecodedMedia:
    """Synthetic decoded media without touching the file system."""
    return DecodedMedia(
        path=path,
        format=MediaFormat.GIF,
        frames=make_frames(count, side, duration),
        source_frame_count=count,
    )


def write_gif(path: Path, frame_count: int, size: tuple[int, int] = (4, 4), duration_ms: int = 50) -> Path:
    """
    Write an animated GIF whose consecutive frames all differ.

    :param path: Target file
    :param frame_count: Number of frames
    :param size: Frame size (width, height)
    :param duration_ms: Duration of every frame
    :return: The path
    """
    frames = [
        PIL.Image.new("RGB", size, (index % 256, (index * 7) % 256, 0))
        for index in range(frame_count)
    ]
    frames[0].save(
        path,
        save_all=True,
        append_images=frames[1:],
        duration=duration_ms,
        loop=0,
    )
    return path


def write_png(path: Path, size: tuple[int, int] = (40, 20)) -> Path:
    PIL.Image.new("RGBA", size, (200, 40, 40, 255)).save(path)
    return path


@pytest.fixture
def gif_factory(tmp_path):
    """Factory writing animated GIFs into tmp_path."""
    def factory(name: str = "anim.gif", frame_count: int = 5, size=(4, 4), duration_ms: int = 50) -> str:
        return str(write_gif(tmp_path / name, frame_count, size, duration_ms))
    return factory


@pytest.fixture
def png_file(tmp_path) -> str:
    return str(write_png(tmp_path / "still.png"))


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a small worker pool and the default tunables."""
    return Settings(DECODE_WORKERS=2)


@pytest.fixture
def engine(test_settings):
    """A canvas engine, closed after the test."""
    canvas = CanvasEngine(test_settings)
    yield canvas
    canvas.close()


def finish_decodes(engine: CanvasEngine, elapsed: float = 0.0) -> None:
    """Wait for all pending decodes and apply them with one tick."""
    assert engine.pipeline.wait_for_pending(timeout=30)
    engine.tick(elapsed)
