"""Playback supervision for animated image blocks.

The supervisor owns the set of playing animations and keeps it within the
concurrency cap, advances frames on every tick, and guards rendering:

- Starting an animation beyond the cap pauses the oldest, heaviest playing
  animations first. Blocks the user clicked during the current tick are never
  picked.
- A playing record whose current frame is missing or has zero size when the
  renderer asks for it is marked crashed and leaves the playing set. Other
  records are not touched.
- Crashed records are recovered lazily on the next render request: the
  first-frame snapshot if there is one, else a first-frame reload is
  requested and a crashed placeholder is shown meanwhile.

Example:
    supervisor = AnimationSupervisor(textures, max_playing=15)
    supervisor.play(block_id, now)

    # per tick
    supervisor.advance(dt)
    frame = supervisor.render_frame(block_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .frames import FrameTexture
from .textures import AnimationRecord, TextureMemoryManager

logger = logging.getLogger(__name__)

ReloadCallback = Callable[[str, bool], None]
"Called with (block_id, first_frame_only) to request a background decode"


class FrameKind(Enum):
    """What the renderer receives for an image block."""

    FRAME = "frame"  # current animation frame
    SNAPSHOT = "snapshot"  # retained first frame
    CRASHED = "crashed"  # textual crashed placeholder
    LOADING = "loading"  # decode in flight
    UNTEXTURED = "untextured"  # decode failed


class MediaState(Enum):
    """Badge state of an image block."""

    LOADING = "loading"
    UNTEXTURED = "untextured"
    PLAYING = "playing"
    PAUSED = "paused"
    LAZY = "lazy"
    CRASHED = "crashed"


CRASHED_TOKEN = "CRASHED"


@dataclass(frozen=True, eq=False)
class RenderFrame:
    """Renderable output of an image block.

    :param kind: Which source the frame comes from
    :param frame: The texture (None for placeholder kinds)
    :param index: Frame index for FRAME kind
    """

    kind: FrameKind
    frame: FrameTexture | None = None
    index: int = 0

    @property
    def pixels(self):
        return None if self.frame is None else self.frame.pixels

    @property
    def placeholder(self) -> str | None:
        """Text token for placeholder kinds."""
        if self.kind == FrameKind.CRASHED:
            return CRASHED_TOKEN
        return None


class AnimationSupervisor:
    """Concurrency throttle, frame clock and crash guard.

    :param textures: Texture manager holding the records
    :param max_playing: Concurrency cap
    :param default_frame_duration: Used for frames without a positive duration
    :param request_reload: Callback requesting a background decode
    """

    def __init__(
        self,
        textures: TextureMemoryManager,
        max_playing: int = 15,
        default_frame_duration: float = 0.1,
        request_reload: ReloadCallback | None = None,
    ):
        self.textures = textures
        self.max_playing = max_playing
        self.default_frame_duration = default_frame_duration
        self.request_reload = request_reload
        self._playing: set[str] = set()
        self._just_clicked: set[str] = set()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def playing(self) -> frozenset[str]:
        """Ids of the playing animations."""
        return frozenset(self._playing)

    def is_playing(self, block_id: str) -> bool:
        return block_id in self._playing

    def state_of(self, block_id: str) -> MediaState | None:
        """Badge state, None if the block has no record."""
        record = self.textures.get(block_id)
        if record is None:
            return None
        if record.crashed:
            return MediaState.CRASHED
        if record.playing:
            return MediaState.PLAYING
        if record.lazy:
            return MediaState.LAZY
        return MediaState.PAUSED

    # -------------------------------------------------------------------------
    # Playback control
    # -------------------------------------------------------------------------

    def play(self, block_id: str, now: float, user: bool = False) -> bool:
        """Start an animation, pausing others if the cap is reached.

        :param block_id: Block to start
        :param now: Current tick time
        :param user: Whether a user click started it
        :return: True if the block is playing afterwards
        """
        record = self.textures.get(block_id)
        if record is None or record.crashed or record.lazy or record.frame_count < 2:
            return False
        record.last_interaction = now
        if user:
            self._just_clicked.add(block_id)
        if block_id in self._playing:
            return True

        overflow = len(self._playing) + 1 - self.max_playing
        if overflow > 0:
            victims = self._pause_victims(overflow)
            if len(victims) < overflow:
                logger.warning(
                    f"Can not start {block_id}: {len(self._playing)} animations playing, "
                    f"all recently clicked"
                )
                return False
            for victim in victims:
                self.pause(victim)
                logger.info(f"Paused animation {victim} to enforce concurrent limit ({self.max_playing})")

        self._playing.add(block_id)
        record.playing = True
        return True

    def _pause_victims(self, count: int) -> list[str]:
        """Pick playing animations to pause, oldest and heaviest first."""
        candidates = []
        for block_id in self._playing:
            if block_id in self._just_clicked:
                continue
            record = self.textures.get(block_id)
            if record is None:
                candidates.append((float("-inf"), 0, block_id))
                continue
            candidates.append((record.last_interaction, -record.frame_count, block_id))
        candidates.sort()
        return [block_id for _, _, block_id in candidates[:count]]

    def pause(self, block_id: str) -> None:
        self._playing.discard(block_id)
        record = self.textures.get(block_id)
        if record is not None:
            record.playing = False

    def click(self, block_id: str, now: float) -> bool:
        """User click on an image block: toggle playback.

        Lazy and crashed records request a full reload and start playing once
        it is admitted.

        :return: True if the click changed or requested anything
        """
        self._just_clicked.add(block_id)
        record = self.textures.get(block_id)
        if record is None:
            return False
        record.last_interaction = now

        if record.crashed or record.lazy:
            if not record.source_path or self.request_reload is None:
                return False
            record.pending_play = True
            logger.info(f"Animation load requested for {block_id}")
            self.request_reload(block_id, False)
            return True

        if block_id in self._playing:
            self.pause(block_id)
            return True
        return self.play(block_id, now, user=True)

    def on_admitted(self, record: AnimationRecord, now: float, autoplay: bool = False) -> None:
        """Start playback after a (re)load if it was requested."""
        user = record.pending_play
        record.pending_play = False
        if user or autoplay:
            self.play(record.block_id, now, user=user)

    def forget(self, block_id: str) -> None:
        """Drop all playback state of a deleted block."""
        self._playing.discard(block_id)
        self._just_clicked.discard(block_id)

    def end_tick(self) -> None:
        """Clicks only protect blocks for the tick they happened in."""
        self._just_clicked.clear()

    def clear(self) -> None:
        self._playing.clear()
        self._just_clicked.clear()

    # -------------------------------------------------------------------------
    # Frame clock
    # -------------------------------------------------------------------------

    def advance(self, dt: float) -> None:
        """Advance playing animations by ``dt`` seconds."""
        for block_id in sorted(self._playing):
            record = self.textures.get(block_id)
            if record is None or record.current_frame is None:
                # Left for render_frame to detect
                continue
            count = record.frame_count
            if count < 2:
                continue
            record.elapsed_in_frame += dt
            cycle = sum(self._duration(f) for f in record.frames)
            if record.elapsed_in_frame > cycle:
                record.elapsed_in_frame %= cycle
            while True:
                duration = self._duration(record.frames[record.current_index])
                if record.elapsed_in_frame < duration:
                    break
                record.elapsed_in_frame -= duration
                record.current_index = (record.current_index + 1) % count

    def _duration(self, frame: FrameTexture) -> float:
        return frame.duration if frame.duration > 0 else self.default_frame_duration

    # -------------------------------------------------------------------------
    # Rendering guard
    # -------------------------------------------------------------------------

    def render_frame(self, block_id: str) -> RenderFrame | None:
        """Renderable output of a block, detecting crashes on the way.

        :return: The frame to draw, None if the block has no record
        """
        record = self.textures.get(block_id)
        if record is None:
            return None

        if record.playing:
            frame = record.current_frame
            if frame is not None and frame.is_valid:
                return RenderFrame(FrameKind.FRAME, frame, record.current_index)
            self._mark_crashed(record)

        if record.crashed:
            return self._recover(record)

        frame = record.current_frame
        if frame is not None and frame.is_valid:
            return RenderFrame(FrameKind.FRAME, frame, record.current_index)
        if record.snapshot is not None and record.snapshot.is_valid:
            return RenderFrame(FrameKind.SNAPSHOT, record.snapshot)
        return RenderFrame(FrameKind.LOADING)

    def _mark_crashed(self, record: AnimationRecord) -> None:
        record.crashed = True
        record.playing = False
        self._playing.discard(record.block_id)
        logger.warning(
            f"Animation crash detected for {record.block_id} "
            f"(frame {record.current_index} of {record.frame_count})"
        )

    def _recover(self, record: AnimationRecord) -> RenderFrame:
        if record.snapshot is not None and record.snapshot.is_valid:
            return RenderFrame(FrameKind.SNAPSHOT, record.snapshot)
        if (
            record.source_path
            and not record.recovery_requested
            and self.request_reload is not None
        ):
            record.recovery_requested = True
            logger.info(f"Emergency recovery: reloading first frame of {record.block_id}")
            self.request_reload(record.block_id, True)
        return RenderFrame(FrameKind.CRASHED)
