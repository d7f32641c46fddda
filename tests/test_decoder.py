"""
Tests for format classification, Pillow decoding and the decode pipeline.
"""

import logging
from pathlib import Path

import pytest

from mablocks.exceptions import DecodeFailure, UnsupportedFormatError
from mablocks.media import (
    DecodePipeline,
    DecodeRequest,
    MediaFormat,
    classify_format,
    decode_file,
)

from conftest import make_media


class TestClassify:
    """Tests for classify_format."""

    def test_gif(self, gif_factory):
        """GIF files are recognised by their magic bytes."""
        assert classify_format(gif_factory(frame_count=2)) == MediaFormat.GIF

    def test_png(self, png_file):
        """PNG files are recognised by their magic bytes."""
        assert classify_format(png_file) == MediaFormat.PNG

    def test_magic_bytes_win_over_extension(self, tmp_path, gif_factory):
        """A GIF with a wrong extension is still a GIF."""
        source = gif_factory(frame_count=2)
        renamed = tmp_path / "animation.png"
        renamed.write_bytes(Path(source).read_bytes())
        assert classify_format(str(renamed)) == MediaFormat.GIF

    def test_text_file_is_unknown(self, tmp_path):
        """Non-image files are unknown."""
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        assert classify_format(str(path)) == MediaFormat.UNKNOWN


class TestDecodeFile:
    """Tests for decode_file."""

    def test_decodes_all_frames(self, gif_factory):
        """Every frame is decoded to RGBA with its duration."""
        media = decode_file(gif_factory(frame_count=5, size=(8, 4), duration_ms=50))
        assert len(media.frames) == 5
        assert media.source_frame_count == 5
        assert not media.truncated
        assert media.format == MediaFormat.GIF
        assert media.frames[0].pixels.shape == (4, 8, 4)
        assert media.aspect_ratio == pytest.approx(2.0)
        assert all(f.duration == pytest.approx(0.05) for f in media.frames)

    def test_truncates_to_frame_limit(self, gif_factory, caplog):
        """A 700 frame source keeps exactly 500 frames and is flagged."""
        path = gif_factory(frame_count=700, size=(2, 2))
        with caplog.at_level(logging.WARNING):
            media = decode_file(path, frame_limit=500)
        assert len(media.frames) == 500
        assert media.source_frame_count == 700
        assert media.truncated
        assert "exceeds limit" in caplog.text

    def test_first_frame_only(self, gif_factory):
        """First-frame decodes report the full source frame count."""
        media = decode_file(gif_factory(frame_count=6), first_frame_only=True)
        assert len(media.frames) == 1
        assert media.source_frame_count == 6
        assert not media.truncated

    def test_static_image(self, png_file):
        """Static images decode to one frame without duration."""
        media = decode_file(png_file)
        assert len(media.frames) == 1
        assert media.frames[0].duration == 0.0
        assert media.width == 40
        assert media.height == 20

    def test_frames_are_read_only(self, png_file):
        """Decoded pixel buffers can not be modified."""
        media = decode_file(png_file)
        assert not media.frames[0].pixels.flags.writeable

    def test_missing_file(self, tmp_path):
        """Missing files raise DecodeFailure."""
        with pytest.raises(DecodeFailure) as exc_info:
            decode_file(str(tmp_path / "missing.gif"))
        assert exc_info.value.reason == "file not found"

    def test_unsupported_format(self, tmp_path):
        """Non-image files raise UnsupportedFormatError."""
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        with pytest.raises(UnsupportedFormatError):
            decode_file(str(path))

    def test_corrupt_file(self, tmp_path):
        """Corrupt data raises DecodeFailure."""
        path = tmp_path / "broken.gif"
        path.write_bytes(b"GIF89a" + b"\x00" * 7)
        with pytest.raises(DecodeFailure):
            decode_file(str(path))


class TestDecodePipeline:
    """Tests for the background pipeline."""

    def test_submit_and_drain(self):
        """Results arrive on the queue tagged with their request."""
        pipeline = DecodePipeline(max_workers=2, decoder=lambda path, **kwargs: make_media(3, path=path))
        try:
            assert pipeline.submit(DecodeRequest("block-1", "a.gif", generation=4))
            assert pipeline.wait_for_pending(timeout=10)
            results = pipeline.drain()
            assert len(results) == 1
            result = results[0]
            assert result.ok
            assert result.block_id == "block-1"
            assert result.generation == 4
            assert len(result.media.frames) == 3
            assert pipeline.drain() == []
        finally:
            pipeline.shutdown()

    def test_passes_decode_options(self):
        """The pipeline forwards frame limit and first-frame flag."""
        calls = []

        def decoder(path, frame_limit, default_duration, first_frame_only):
            calls.append((path, frame_limit, default_duration, first_frame_only))
            return make_media(1, path=path)

        pipeline = DecodePipeline(max_workers=1, frame_limit=7, default_duration=0.2, decoder=decoder)
        try:
            pipeline.submit(DecodeRequest("b", "x.gif", first_frame_only=True))
            pipeline.wait_for_pending(timeout=10)
            result = pipeline.drain()[0]
            assert result.first_frame_only
            assert calls == [("x.gif", 7, 0.2, True)]
        finally:
            pipeline.shutdown()

    def test_decode_failure_becomes_result(self):
        """Decode failures are reported as failed results."""
        def decoder(path, **kwargs):
            raise DecodeFailure(path, "corrupt data")

        pipeline = DecodePipeline(max_workers=1, decoder=decoder)
        try:
            pipeline.submit(DecodeRequest("b", "bad.gif"))
            pipeline.wait_for_pending(timeout=10)
            result = pipeline.drain()[0]
            assert not result.ok
            assert result.error == "corrupt data"
        finally:
            pipeline.shutdown()

    def test_unexpected_error_becomes_result(self):
        """Unexpected worker exceptions never escape the pool."""
        def decoder(path, **kwargs):
            raise RuntimeError("boom")

        pipeline = DecodePipeline(max_workers=1, decoder=decoder)
        try:
            pipeline.submit(DecodeRequest("b", "bad.gif"))
            pipeline.wait_for_pending(timeout=10)
            result = pipeline.drain()[0]
            assert not result.ok
            assert result.error == "boom"
        finally:
            pipeline.shutdown()

    def test_failure_does_not_affect_others(self):
        """One failing request leaves the other results intact."""
        def decoder(path, **kwargs):
            if path == "bad.gif":
                raise DecodeFailure(path, "corrupt data")
            return make_media(2, path=path)

        pipeline = DecodePipeline(max_workers=2, decoder=decoder)
        try:
            for index, path in enumerate(["a.gif", "bad.gif", "c.gif"]):
                pipeline.submit(DecodeRequest(f"b{index}", path))
            pipeline.wait_for_pending(timeout=10)
            results = {r.block_id: r for r in pipeline.drain()}
            assert results["b0"].ok
            assert not results["b1"].ok
            assert results["b2"].ok
        finally:
            pipeline.shutdown()

    def test_submit_after_shutdown(self):
        """A closed pipeline refuses requests."""
        pipeline = DecodePipeline(max_workers=1, decoder=lambda path, **kwargs: make_media(1))
        pipeline.shutdown()
        assert not pipeline.submit(DecodeRequest("b", "a.gif"))
        assert pipeline.pending_count == 0
