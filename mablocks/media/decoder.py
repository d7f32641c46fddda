"""
Background decode pipeline for image and animation files.

Decoding runs on a thread pool. Workers never touch the block registry or the
texture manager: they build immutable DecodeResult objects and put them on a
single-consumer queue, which the interactive thread drains once per tick.

Flow:
1. The engine calls submit() with a DecodeRequest (never blocks)
2. A worker classifies and decodes the file with Pillow
3. The worker puts a DecodeResult (media or error) on the result queue
4. The engine calls drain() on its next tick and applies the results

Example:
    pipeline = DecodePipeline(max_workers=4, frame_limit=500)
    pipeline.submit(DecodeRequest(block_id, "cat.gif", generation=1))

    # once per tick:
    for result in pipeline.drain():
        apply(result)
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable

import filetype
import numpy as np
import PIL.Image
import PIL.ImageSequence

from mablocks.exceptions import DecodeFailure, UnsupportedFormatError

from .frames import DecodedMedia, FrameTexture, MediaFormat

logger = logging.getLogger(__name__)

_EXTENSION_FORMATS: dict[str, MediaFormat] = {
    "gif": MediaFormat.GIF,
    "png": MediaFormat.PNG,
    "apng": MediaFormat.APNG,
    "webp": MediaFormat.WEBP,
    "jpg": MediaFormat.JPEG,
    "jpeg": MediaFormat.JPEG,
    "bmp": MediaFormat.BMP,
    "tif": MediaFormat.TIFF,
    "tiff": MediaFormat.TIFF,
    "avif": MediaFormat.AVIF,
}


def classify_format(path: str) -> MediaFormat:
    """Classify a file by its magic bytes, falling back to the extension.

    :param path: File path
    :return: The detected format, MediaFormat.UNKNOWN if not an image
    """
    try:
        kind = filetype.guess(path)
    except OSError:
        kind = None
    if kind is not None:
        if not kind.mime.startswith("image/"):
            return MediaFormat.UNKNOWN
        return _EXTENSION_FORMATS.get(kind.extension, MediaFormat.UNKNOWN)
    extension = os.path.splitext(path)[1].lower().lstrip(".")
    return _EXTENSION_FORMATS.get(extension, MediaFormat.UNKNOWN)


def decode_file(
    path: str,
    frame_limit: int = 500,
    default_duration: float = 0.1,
    first_frame_only: bool = False,
) -> DecodedMedia:
    """Decode an image or animation into RGBA frames.

    Sources with more frames than ``frame_limit`` are truncated; this is a
    policy, not an error.

    :param path: Source file path
    :param frame_limit: Maximum number of frames kept
    :param default_duration: Duration (seconds) of animation frames that
        report no timing
    :param first_frame_only: Only decode the first frame (snapshot reload)
    :return: The decoded media
    :raises DecodeFailure: If the file can not be read or holds no frames
    """
    if not os.path.exists(path):
        raise DecodeFailure(path, "file not found")
    media_format = classify_format(path)
    if media_format == MediaFormat.UNKNOWN:
        raise UnsupportedFormatError(path, "not a supported image format")

    limit = 1 if first_frame_only else max(1, frame_limit)
    frames: list[FrameTexture] = []
    try:
        with PIL.Image.open(path) as pil_image:
            source_count = int(getattr(pil_image, "n_frames", 1))
            animated = source_count > 1
            for index, frame in enumerate(PIL.ImageSequence.Iterator(pil_image)):
                if index >= limit:
                    break
                pixels = np.array(frame.convert("RGBA"), dtype=np.uint8)
                pixels.setflags(write=False)
                duration = 0.0
                if animated:
                    duration = (pil_image.info.get("duration") or 0) / 1000.0
                    if duration <= 0:
                        duration = default_duration
                frames.append(FrameTexture(pixels=pixels, duration=duration))
    except (OSError, ValueError, EOFError, PIL.Image.DecompressionBombError) as e:
        raise DecodeFailure(path, str(e)) from e

    if not frames or not frames[0].is_valid:
        raise DecodeFailure(path, "no decodable frames")

    truncated = not first_frame_only and source_count > len(frames)
    if truncated:
        logger.warning(
            f"Frame count ({source_count}) of {path} exceeds limit ({frame_limit}), truncating"
        )
    return DecodedMedia(
        path=path,
        format=media_format,
        frames=tuple(frames),
        source_frame_count=source_count,
        truncated=truncated,
    )


@dataclass(frozen=True)
class DecodeRequest:
    """A request to decode the source of one block.

    :param block_id: Block the result belongs to
    :param path: Source file path
    :param generation: Request generation of the block (newer wins)
    :param first_frame_only: Only decode the first frame
    """

    block_id: str
    path: str
    generation: int = 0
    first_frame_only: bool = False


@dataclass(frozen=True)
class DecodeResult:
    """Completion message of a decode request."""

    block_id: str
    generation: int
    media: DecodedMedia | None = None
    error: str | None = None
    first_frame_only: bool = False

    @property
    def ok(self) -> bool:
        return self.media is not None and self.error is None


class DecodePipeline:
    """Fire-and-forget decoding on a thread pool.

    :param max_workers: Decode threads
    :param frame_limit: Maximum frames kept per source
    :param default_duration: Duration for animation frames without timing
    :param decoder: Decode function (path, frame_limit, default_duration,
        first_frame_only) -> DecodedMedia
    """

    def __init__(
        self,
        max_workers: int = 4,
        frame_limit: int = 500,
        default_duration: float = 0.1,
        decoder: Callable[..., DecodedMedia] = decode_file,
    ):
        self.frame_limit = frame_limit
        self.default_duration = default_duration
        self._decoder = decoder
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="MediaDecoder",
        )
        self._results: queue.Queue[DecodeResult] = queue.Queue()
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self._closed = False

    def submit(self, request: DecodeRequest) -> bool:
        """Queue a decode request (non-blocking).

        :param request: The request
        :return: False if the pipeline is shut down
        """
        if self._closed:
            logger.debug(f"Pipeline closed, dropping decode of {request.path}")
            return False
        future = self._executor.submit(self._decode, request)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return True

    def drain(self) -> list[DecodeResult]:
        """Collect all completed results without blocking."""
        results = []
        while True:
            try:
                results.append(self._results.get_nowait())
            except queue.Empty:
                return results

    def wait_for_pending(self, timeout: float | None = None) -> bool:
        """Block until all submitted decodes finished (shutdown and tests).

        :param timeout: Max seconds to wait (None = forever)
        :return: True if nothing is pending anymore
        """
        with self._pending_lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    @property
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting requests and release the worker threads."""
        self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _discard(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _decode(self, request: DecodeRequest) -> None:
        """Worker: decode and post the result; never raises."""
        try:
            media = self._decoder(
                request.path,
                frame_limit=self.frame_limit,
                default_duration=self.default_duration,
                first_frame_only=request.first_frame_only,
            )
            result = DecodeResult(
                block_id=request.block_id,
                generation=request.generation,
                media=media,
                first_frame_only=request.first_frame_only,
            )
        except DecodeFailure as e:
            logger.warning(str(e))
            result = DecodeResult(
                block_id=request.block_id,
                generation=request.generation,
                error=e.reason,
                first_frame_only=request.first_frame_only,
            )
        except Exception as e:
            logger.warning(f"Unexpected error decoding {request.path}: {e}")
            result = DecodeResult(
                block_id=request.block_id,
                generation=request.generation,
                error=str(e),
                first_frame_only=request.first_frame_only,
            )
        self._results.put(result)
