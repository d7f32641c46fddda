"""
Canvas engine - the interactive-thread owner of a canvas.

The engine owns the block registry, the chain registry, the geometry solver,
the decode pipeline, the texture memory manager and the animation supervisor.
The host application feeds it normalized input events and periodic ticks and
draws the render model it returns.

Per tick:
1. Advance the tick clock
2. Drain decode results (stale generations and deleted blocks are dropped)
3. Advance playing animations
4. Dissolve idle chains
5. Forget the clicks of this tick

Example:
    engine = CanvasEngine()
    block = engine.add_image_block("cat.gif")

    # host loop
    engine.pointer_down(PointerEvent(x, y, PointerButton.PRIMARY))
    engine.tick(1 / 60)
    for view in engine.render_model():
        draw(view)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable

from mablocks.blocks import Block, BlockKind, BlockRegistry
from mablocks.config import Settings, settings as default_settings
from mablocks.events import KeyEvent, PointerButton, PointerEvent
from mablocks.geometry import Rectangle, ResizeHandle
from mablocks.layout import (
    ChainRegistry,
    GeometrySolver,
    SolverResult,
    find_free_position,
    handle_for_point,
    resize_rect,
)
from mablocks.media import (
    AnimationSupervisor,
    DecodePipeline,
    DecodeRequest,
    DecodeResult,
    DecodedMedia,
    FrameKind,
    MediaState,
    RenderFrame,
    TextureMemoryManager,
    decode_file,
)
from mablocks.sessions import CanvasSession

logger = logging.getLogger(__name__)


@dataclass
class MediaView:
    """Media part of the render model of an image block."""
    frame: RenderFrame
    state: MediaState
    frame_count: int = 0
    source_frame_count: int = 0
    truncated: bool = False
    counter: int = 0


@dataclass
class BlockView:
    """Everything the renderer needs to draw one block."""
    id: str
    kind: BlockKind
    rect: Rectangle
    z_index: int
    selected: bool = False
    hovered: bool = False
    editing: bool = False
    chained: bool = False
    chain_group: str | None = None
    text: str | None = None
    media: MediaView | None = None
    dirty: bool = False


@dataclass
class _PointerGesture:
    """State of a press until its release."""
    block_id: str
    button: PointerButton | None
    start: tuple[float, float]
    # Rectangles of the rigid unit when the press started
    initial: dict[str, Rectangle] = field(default_factory=dict)
    handle: ResizeHandle | None = None
    moved: bool = False

    @property
    def resizing(self) -> bool:
        return self.handle is not None


class CanvasEngine:
    """Headless canvas core.

    :param settings: Tunables, the process settings if omitted
    :param decoder: Decode function used by the pipeline workers
    """

    def __init__(
        self,
        settings: Settings | None = None,
        decoder: Callable[..., DecodedMedia] = decode_file,
    ):
        self.settings = settings or default_settings
        s = self.settings
        self.blocks = BlockRegistry()
        self.chains = ChainRegistry(timeout=s.CHAIN_TIMEOUT)
        self.solver = GeometrySolver(
            gap=s.COLLISION_GAP,
            max_iterations=s.SOLVER_MAX_ITERATIONS,
            epsilon=s.SOLVER_EPSILON,
            extent=s.CANVAS_EXTENT,
        )
        self.pipeline = DecodePipeline(
            max_workers=s.DECODE_WORKERS,
            frame_limit=s.FRAME_LIMIT,
            default_duration=s.DEFAULT_FRAME_DURATION,
            decoder=decoder,
        )
        self.textures = TextureMemoryManager(
            budget_bytes=s.TEXTURE_BUDGET_BYTES,
            threshold_bytes=s.cleanup_threshold_bytes,
        )
        self.supervisor = AnimationSupervisor(
            self.textures,
            max_playing=s.MAX_PLAYING,
            default_frame_duration=s.DEFAULT_FRAME_DURATION,
            request_reload=self._request_reload,
        )

        self.selected_id: str | None = None
        self.editing_id: str | None = None
        self.counter_tool = False
        self._time = 0.0
        self._gesture: _PointerGesture | None = None
        # Latest full-decode generation per block
        self._generations: dict[str, int] = {}
        # Image blocks whose decode failed
        self._failed: set[str] = set()

    def __enter__(self) -> 'CanvasEngine':
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @property
    def now(self) -> float:
        """Tick clock in seconds."""
        return self._time

    def close(self) -> None:
        """Stop the decode workers."""
        self.pipeline.shutdown(wait=False)

    # -------------------------------------------------------------------------
    # Block lifecycle
    # -------------------------------------------------------------------------

    def add_text_block(self, text: str | None = None, at: tuple[float, float] | None = None) -> Block:
        """Spawn a text block at the first free position near ``at``."""
        s = self.settings
        width, height = s.TEXT_BLOCK_WIDTH, s.TEXT_BLOCK_HEIGHT
        x, y = self._spawn_position(width, height, at)
        block = self.blocks.add(Block.text_block(text, x=x, y=y, width=width, height=height))
        logger.info(f"Created text block {block.id}")
        return block

    def add_image_block(self, path: str, at: tuple[float, float] | None = None) -> Block:
        """Spawn a square placeholder for an image and request its decode.

        The block takes the aspect ratio of the image once the first frame
        is decoded.
        """
        width = self.settings.IMAGE_BLOCK_WIDTH
        x, y = self._spawn_position(width, width, at)
        block = self.blocks.add(
            Block.image_block(str(path), x=x, y=y, width=width, height=width)
        )
        logger.info(f"Created image block {block.id} for {path}")
        self._request_decode(block.id, first_frame_only=False)
        return block

    def delete_block(self, block_id: str) -> bool:
        """Remove a block and every resource it holds.

        :return: False if the block does not exist
        """
        block = self.blocks.remove(block_id)
        if block is None:
            logger.debug(f"delete_block: unknown block {block_id}")
            return False
        self.chains.remove_block(block_id)
        self.supervisor.forget(block_id)
        freed = self.textures.release(block_id)
        self._generations.pop(block_id, None)
        self._failed.discard(block_id)
        if self.selected_id == block_id:
            self.selected_id = None
        if self.editing_id == block_id:
            self.editing_id = None
        if self._gesture is not None and block_id in self._gesture.initial:
            self._gesture = None
        logger.info(f"Deleted block {block_id} (freed {freed} bytes)")
        return True

    def toggle_chain(self, block_id: str) -> bool:
        """Flip the chain flag of a block."""
        if block_id not in self.blocks:
            logger.debug(f"toggle_chain: unknown block {block_id}")
            return False
        affected = self.chains.members_of(block_id)
        self.chains.toggle(block_id, self._time)
        affected |= self.chains.members_of(block_id)
        self._mark_dirty(affected)
        return True

    def set_text(self, block_id: str, text: str) -> bool:
        block = self.blocks.get(block_id)
        if block is None or not block.is_text():
            return False
        if block.text != text:
            block.text = text
            block.dirty = True
        return True

    def set_counter_tool(self, active: bool) -> None:
        """Switch clicks on image blocks between playback and counting."""
        self.counter_tool = active

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def pointer_down(self, event: PointerEvent) -> str | None:
        """Press on the canvas.

        :return: Id of the pressed block, None for empty canvas
        """
        block = self.blocks.hit_test(event.x, event.y)
        if block is None:
            self._select(None)
            self.editing_id = None
            self._gesture = None
            return None

        if self.editing_id is not None and self.editing_id != block.id:
            self.editing_id = None
        self._select(block.id)
        self.blocks.bring_to_front(block.id)
        self.textures.touch(block.id, self._time)

        if event.is_secondary:
            unit = {block.id}
            handle = handle_for_point(block.rect, event.x, event.y)
        else:
            unit = self.chains.members_of(block.id)
            handle = None
        self._gesture = _PointerGesture(
            block_id=block.id,
            button=event.button,
            start=event.position,
            initial=self.blocks.rects(unit),
            handle=handle,
        )
        return block.id

    def pointer_move(self, event: PointerEvent) -> None:
        """Drag the pressed block (or resize it) or update hover."""
        gesture = self._gesture
        if gesture is None:
            self._update_hover(event.x, event.y)
            return

        dx = event.x - gesture.start[0]
        dy = event.y - gesture.start[1]
        if not gesture.moved and math.hypot(dx, dy) < self.settings.DRAG_THRESHOLD:
            return
        gesture.moved = True

        if gesture.resizing:
            block = self.blocks.get(gesture.block_id)
            if block is None:
                return
            aspect = block.aspect_ratio if block.is_image() else None
            block.set_rect(resize_rect(
                gesture.initial[gesture.block_id],
                gesture.handle,
                dx,
                dy,
                aspect_ratio=aspect,
                min_size=self.settings.MIN_BLOCK_SIZE,
            ))
        else:
            # Rigid move without overlap resolution until release
            self.blocks.apply_rects({
                bid: rect.translated(dx, dy) for bid, rect in gesture.initial.items()
            })
        self.chains.touch(gesture.block_id, self._time)

    def pointer_up(self, event: PointerEvent) -> SolverResult | None:
        """Release: a click if the pointer barely moved, else end the drag.

        :return: The solver result after a drag, None after a click
        """
        gesture = self._gesture
        self._gesture = None
        if gesture is None or gesture.block_id not in self.blocks:
            return None

        if not gesture.moved:
            self._click(gesture.block_id, gesture.button)
            return None

        anchored = {gesture.block_id} if gesture.resizing else set(gesture.initial)
        result = self._solve(anchored)
        self.chains.touch(gesture.block_id, self._time)
        self.textures.touch(gesture.block_id, self._time)
        return result

    def double_click(self, event: PointerEvent) -> bool:
        """Start editing the text block under the pointer."""
        block = self.blocks.hit_test(event.x, event.y)
        if block is None or not block.is_text():
            return False
        self._select(block.id)
        self.editing_id = block.id
        block.dirty = True
        return True

    def key_press(self, event: KeyEvent) -> bool:
        """Escape ends editing, Delete removes the selected block."""
        key = event.key.lower()
        if key == 'escape':
            if self.editing_id is None:
                return False
            self._mark_dirty({self.editing_id})
            self.editing_id = None
            return True
        if key == 'delete' and self.editing_id is None and self.selected_id is not None:
            return self.delete_block(self.selected_id)
        return False

    def _click(self, block_id: str, button: PointerButton | None) -> None:
        block = self.blocks[block_id]
        if not block.is_image():
            return
        if self.counter_tool:
            if button == PointerButton.SECONDARY:
                block.counter = max(0, block.counter - 1)
            else:
                block.counter += 1
            block.dirty = True
            return
        if button == PointerButton.SECONDARY:
            return
        self.supervisor.click(block_id, self._time)
        block.dirty = True

    def _select(self, block_id: str | None) -> None:
        if self.selected_id == block_id:
            return
        for bid in (self.selected_id, block_id):
            block = self.blocks.get(bid) if bid else None
            if block is not None:
                block.selected = bid == block_id
                block.dirty = True
        self.selected_id = block_id

    def _update_hover(self, x: float, y: float) -> None:
        hit = self.blocks.hit_test(x, y)
        hit_id = hit.id if hit is not None else None
        for block in self.blocks:
            hovered = block.id == hit_id
            if block.hovered != hovered:
                block.hovered = hovered
                block.dirty = True

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self, elapsed: float) -> None:
        """Advance the engine by ``elapsed`` seconds."""
        elapsed = max(0.0, elapsed)
        self._time += elapsed

        for result in self.pipeline.drain():
            self._apply_result(result)

        self.supervisor.advance(elapsed)
        self._mark_dirty(self.supervisor.playing)

        members = {g.id: set(g.members) for g in self.chains.groups()}
        for group_id in self.chains.expire(self._time):
            self._mark_dirty(members.get(group_id, ()))

        self.supervisor.end_tick()

    def _apply_result(self, result: DecodeResult) -> None:
        block = self.blocks.get(result.block_id)
        if block is None:
            logger.debug(f"Dropping decode result of deleted block {result.block_id}")
            return
        if (
            not result.first_frame_only
            and result.generation != self._generations.get(result.block_id)
        ):
            logger.debug(
                f"Dropping stale decode result of {result.block_id} "
                f"(generation {result.generation})"
            )
            return

        record = self.textures.get(result.block_id)
        if not result.ok:
            logger.warning(f"Decode of {block.source_path} failed: {result.error}")
            if record is None:
                self._failed.add(result.block_id)
            else:
                record.pending_play = False
            block.dirty = True
            return

        self._failed.discard(result.block_id)
        first_admission = record is None
        record = self.textures.admit(
            result.block_id,
            result.media,
            self._time,
            source_path=block.source_path,
            snapshot_only=result.first_frame_only,
        )
        block.dirty = True
        self._fit_aspect(block, result.media)
        if not result.first_frame_only:
            self.supervisor.on_admitted(
                record,
                self._time,
                autoplay=first_admission and record.is_animated,
            )

    def _fit_aspect(self, block: Block, media: DecodedMedia) -> None:
        """Give an image block the aspect ratio of its first frame."""
        aspect = media.aspect_ratio
        if block.aspect_ratio is not None and abs(block.aspect_ratio - aspect) < 1e-6:
            return
        block.aspect_ratio = aspect
        block.set_rect(Rectangle(block.x, block.y, block.width, block.width / aspect))
        self._solve({block.id})

    # -------------------------------------------------------------------------
    # Layout
    # -------------------------------------------------------------------------

    def settle(self) -> SolverResult:
        """Resolve overlaps with no anchored block."""
        return self._solve(())

    def _solve(self, anchored) -> SolverResult:
        bodies = [g.members for g in self.chains.groups()]
        result = self.solver.resolve(self.blocks.rects(), bodies=bodies, anchored=anchored)
        self.blocks.apply_rects(result.rects)
        return result

    def _spawn_position(self, width: float, height: float, at: tuple[float, float] | None) -> tuple[float, float]:
        s = self.settings
        return find_free_position(
            [b.rect for b in self.blocks],
            width,
            height,
            start=at or (0.0, 0.0),
            step=s.SPAWN_STEP,
            max_rings=s.SPAWN_MAX_RINGS,
            gap=s.COLLISION_GAP,
        )

    def _mark_dirty(self, ids) -> None:
        for bid in ids:
            block = self.blocks.get(bid)
            if block is not None:
                block.dirty = True

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    def _request_decode(self, block_id: str, first_frame_only: bool) -> bool:
        block = self.blocks.get(block_id)
        if block is None or not block.source_path:
            return False
        if first_frame_only:
            generation = self._generations.get(block_id, 0)
        else:
            generation = self._generations.get(block_id, 0) + 1
            self._generations[block_id] = generation
        return self.pipeline.submit(DecodeRequest(
            block_id=block_id,
            path=block.source_path,
            generation=generation,
            first_frame_only=first_frame_only,
        ))

    def _request_reload(self, block_id: str, first_frame_only: bool) -> None:
        self._request_decode(block_id, first_frame_only)

    # -------------------------------------------------------------------------
    # Render model
    # -------------------------------------------------------------------------

    def render_model(self) -> list[BlockView]:
        """Views of all blocks in draw order; clears the dirty flags."""
        views = []
        for block in self.blocks.ordered():
            group = self.chains.group_of(block.id)
            views.append(BlockView(
                id=block.id,
                kind=BlockKind(block.kind),
                rect=block.rect,
                z_index=block.z_index,
                selected=block.selected,
                hovered=block.hovered,
                editing=block.id == self.editing_id,
                chained=self.chains.is_chained(block.id),
                chain_group=group.id if group is not None else None,
                text=block.text,
                media=self._media_view(block) if block.is_image() else None,
                dirty=block.dirty,
            ))
            block.dirty = False
        return views

    def _media_view(self, block: Block) -> MediaView:
        frame = self.supervisor.render_frame(block.id)
        if frame is None:
            if block.id in self._failed:
                return MediaView(RenderFrame(FrameKind.UNTEXTURED), MediaState.UNTEXTURED, counter=block.counter)
            return MediaView(RenderFrame(FrameKind.LOADING), MediaState.LOADING, counter=block.counter)
        record = self.textures.get(block.id)
        return MediaView(
            frame=frame,
            state=self.supervisor.state_of(block.id),
            frame_count=record.frame_count,
            source_frame_count=record.source_frame_count,
            truncated=record.truncated,
            counter=block.counter,
        )

    @property
    def stats(self) -> dict[str, Any]:
        """Resource statistics of the canvas."""
        return {
            **self.textures.stats,
            "block_count": len(self.blocks),
            "image_count": sum(1 for b in self.blocks if b.is_image()),
            "chain_count": len(self.chains.groups()),
            "playing": len(self.supervisor.playing),
            "max_playing": self.supervisor.max_playing,
            "pending_decodes": self.pipeline.pending_count,
            "failed_count": len(self._failed),
        }

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def snapshot(self) -> CanvasSession:
        """Persisted state of the canvas."""
        return CanvasSession(
            blocks=[block.model_copy() for block in self.blocks.ordered()],
            chains=[sorted(group.members) for group in self.chains.groups()],
        )

    def restore(self, session: CanvasSession) -> None:
        """Replace the canvas with a snapshot.

        Image blocks come back with their first frame only; the full
        animation is decoded when the user clicks them.
        """
        for block_id in self.blocks.ids():
            self.delete_block(block_id)
        self.blocks.clear()
        self.chains.clear()
        self.supervisor.clear()
        self.textures.clear()
        self._gesture = None
        self.selected_id = None
        self.editing_id = None

        for block in session.blocks:
            if block.id in self.blocks:
                logger.warning(f"Skipping duplicate block {block.id} in session")
                continue
            restored = block.model_copy()
            restored.selected = restored.hovered = False
            restored.dirty = True
            self.blocks.add(restored)
        self.chains.restore(
            ([bid for bid in members if bid in self.blocks] for members in session.chains),
            self._time,
        )
        for block in self.blocks:
            if block.is_image():
                self._request_decode(block.id, first_frame_only=True)
        self.settle()
        logger.info(f"Restored session with {len(self.blocks)} blocks")
